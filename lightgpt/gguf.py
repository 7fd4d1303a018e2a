"""Low-level reading of the GGUF container: header, metadata and tensor table."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import Enum, IntEnum
from os import PathLike
from typing import ClassVar, Dict, Tuple, Union

import numpy as np

Buffer = Union[bytes, bytearray, memoryview]

MAGIC = b"GGUF"
ALIGNMENT = 8
MAX_KEY_LENGTH = 1024
MAX_DIMS = 4


class GGUFError(ValueError):
    """Raised when GGUF data is malformed or uses an unsupported feature."""


class GGUFValueType(IntEnum):
    """Type tags of metadata values."""

    UINT8 = 0
    INT8 = 1
    UINT16 = 2
    INT16 = 3
    UINT32 = 4
    INT32 = 5
    FLOAT32 = 6
    BOOL = 7
    STRING = 8
    ARRAY = 9
    UINT64 = 10
    INT64 = 11
    FLOAT64 = 12


class DType(Enum):
    """Element types a tensor can be loaded as."""

    F32 = "f32"
    F16 = "f16"

    @property
    def itemsize(self) -> int:
        return 2 if self is DType.F16 else 4

    @property
    def numpy_dtype(self) -> np.dtype:
        return np.dtype("<f2") if self is DType.F16 else np.dtype("<f4")


# Scalars are read as raw unsigned integers of the tag's width.
_SCALAR_FORMATS: Dict[GGUFValueType, str] = {
    GGUFValueType.UINT8: "B",
    GGUFValueType.INT8: "B",
    GGUFValueType.BOOL: "B",
    GGUFValueType.UINT16: "H",
    GGUFValueType.INT16: "H",
    GGUFValueType.UINT32: "I",
    GGUFValueType.INT32: "I",
    GGUFValueType.FLOAT32: "I",
    GGUFValueType.UINT64: "Q",
    GGUFValueType.INT64: "Q",
    GGUFValueType.FLOAT64: "Q",
}


@dataclass(frozen=True)
class GGUFHeader:
    """The fixed-size header at the start of a GGUF file."""

    SIZE: ClassVar[int] = 24
    FORMAT: ClassVar[str] = "<4sIQQ"

    magic: bytes
    version: int
    n_tensors: int
    n_kv: int


@dataclass(frozen=True)
class TensorInfo:
    """One entry of the tensor table; unused dimensions are padded with 1."""

    n_dims: int
    dims: Tuple[int, ...]
    type: int
    offset: int

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.dims[: self.n_dims]


def align(offset: int) -> int:
    """Round ``offset`` up to the next multiple of eight."""
    return (offset + ALIGNMENT - 1) & ~(ALIGNMENT - 1)


def _unpack(fmt: str, data: Buffer, offset: int) -> Tuple[tuple, int]:
    fmt = "<" + fmt
    try:
        values = struct.unpack_from(fmt, data, offset)
    except struct.error as exc:
        raise GGUFError(f"Unexpected end of data at offset {offset}") from exc
    return values, offset + struct.calcsize(fmt)


def _read_int(fmt: str, data: Buffer, offset: int) -> Tuple[int, int]:
    (value,), offset = _unpack(fmt, data, offset)
    return value, offset


def _read_bytes(data: Buffer, offset: int, length: int) -> Tuple[bytes, int]:
    end = offset + length
    if end > len(data):
        raise GGUFError(f"Unexpected end of data at offset {offset}")
    return bytes(data[offset:end]), end


def _read_text(data: Buffer, offset: int) -> Tuple[str, int]:
    length, offset = _read_int("Q", data, offset)
    raw, offset = _read_bytes(data, offset, length)
    return raw.decode("utf-8", errors="replace"), offset


def read_header(data: Buffer) -> GGUFHeader:
    """Parse and validate the header at the start of ``data``."""
    if len(data) < GGUFHeader.SIZE:
        raise GGUFError("File too small to be a valid GGUF file")
    magic, version, n_tensors, n_kv = struct.unpack_from(GGUFHeader.FORMAT, data, 0)
    if magic != MAGIC:
        raise GGUFError("Invalid GGUF magic number")
    return GGUFHeader(magic, version, n_tensors, n_kv)


def read_header_file(path: Union[str, PathLike]) -> GGUFHeader:
    """Read and validate the header of the GGUF file at ``path``."""
    with open(path, "rb") as fh:
        return read_header(fh.read(GGUFHeader.SIZE))


def _skip_array(data: Buffer, offset: int) -> int:
    array_type, offset = _read_int("I", data, offset)
    length, offset = _read_int("Q", data, offset)
    try:
        element_type = GGUFValueType(array_type)
    except ValueError:
        raise GGUFError("Unsupported array type in GGUF file") from None
    if element_type is GGUFValueType.STRING:
        for _ in range(length):
            _, offset = _read_text(data, offset)
            offset = align(offset)
        return offset
    fmt = _SCALAR_FORMATS.get(element_type)
    if fmt is None:
        raise GGUFError("Unsupported array type in GGUF file")
    end = offset + length * struct.calcsize(fmt)
    if end > len(data):
        raise GGUFError(f"Unexpected end of data at offset {offset}")
    return end


def parse_kv_pairs(data: Buffer, offset: int, n_kv: int) -> Tuple[Dict[str, str], int]:
    """Read ``n_kv`` metadata pairs starting at ``offset``.

    Scalars are stored as the decimal text of their raw bits, strings as
    themselves; arrays are skipped. Returns the metadata and the offset
    just past the last pair.
    """
    end = len(data)
    if not 0 <= offset < end:
        raise GGUFError("Data pointer outside mapped memory region")

    metadata: Dict[str, str] = {}
    for _ in range(n_kv):
        if offset >= end:
            raise GGUFError("Current pointer past end of data in parse_kv_pairs")

        key_len, offset = _read_int("Q", data, offset)
        if key_len > MAX_KEY_LENGTH:
            raise GGUFError(f"Suspiciously long key length: {key_len}")
        raw_key, offset = _read_bytes(data, offset, key_len)
        key = raw_key.decode("utf-8", errors="replace")
        offset = align(offset)

        tag, offset = _read_int("I", data, offset)
        try:
            value_type = GGUFValueType(tag)
        except ValueError:
            raise GGUFError("Unsupported value type in GGUF file") from None

        if value_type is GGUFValueType.STRING:
            value, offset = _read_text(data, offset)
            offset = align(offset)
            metadata[key] = value
        elif value_type is GGUFValueType.ARRAY:
            offset = _skip_array(data, offset)
        else:
            number, offset = _read_int(_SCALAR_FORMATS[value_type], data, offset)
            metadata[key] = str(number)

        offset = align(offset)
    return metadata, offset


def parse_tensor_infos(
    data: Buffer, offset: int, n_tensors: int
) -> Tuple[Dict[str, TensorInfo], int]:
    """Read ``n_tensors`` tensor table entries starting at ``offset``."""
    tensors: Dict[str, TensorInfo] = {}
    for _ in range(n_tensors):
        name, offset = _read_text(data, offset)
        n_dims, offset = _read_int("I", data, offset)
        dims = []
        for index in range(MAX_DIMS):
            if index < n_dims:
                dim, offset = _read_int("Q", data, offset)
                dims.append(dim)
            else:
                dims.append(1)
        tensor_type, offset = _read_int("I", data, offset)
        tensor_offset, offset = _read_int("Q", data, offset)
        tensors[name] = TensorInfo(n_dims, tuple(dims), tensor_type, tensor_offset)
    return tensors, offset


def gguf_type_to_dtype(gguf_type: int) -> DType:
    """Map a GGUF tensor type code to a :class:`DType`."""
    if gguf_type == 0:
        return DType.F32
    raise GGUFError("Unsupported tensor data type")