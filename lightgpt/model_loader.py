"""Memory-mapped loading of GGUF model files."""

from __future__ import annotations

import math
import mmap
import os
from os import PathLike
from typing import IO, Dict, List, Optional, Tuple, Union

import numpy as np

from lightgpt.gguf import (
    DType,
    GGUFError,
    GGUFHeader,
    TensorInfo,
    align,
    gguf_type_to_dtype,
    parse_kv_pairs,
    parse_tensor_infos,
    read_header,
)

DEFAULT_MAX_SEQUENCE_LENGTH = 2048


class ModelNotLoadedError(RuntimeError):
    """Raised when a tensor is requested before a model has been loaded."""


class ModelLoader:
    """Reads the metadata and tensors of a GGUF file through a memory map."""

    def __init__(self, model_path: Optional[Union[str, PathLike]] = None) -> None:
        self._file: Optional[IO[bytes]] = None
        self._map: Optional[mmap.mmap] = None
        self._header: Optional[GGUFHeader] = None
        self._metadata: Dict[str, str] = {}
        self._tensors: Dict[str, TensorInfo] = {}
        if model_path is not None:
            self.load(model_path)

    def load(self, file_path: Union[str, PathLike]) -> None:
        """Map ``file_path`` and parse its header, metadata and tensor table."""
        self.close()
        fh = open(file_path, "rb")
        try:
            if os.fstat(fh.fileno()).st_size < GGUFHeader.SIZE:
                raise GGUFError("File too small to be a valid GGUF file")
            mapped = mmap.mmap(fh.fileno(), 0, access=mmap.ACCESS_READ)
        except BaseException:
            fh.close()
            raise
        self._file, self._map = fh, mapped

        try:
            header = read_header(mapped)
            metadata, offset = parse_kv_pairs(mapped, GGUFHeader.SIZE, header.n_kv)
            tensors, _ = parse_tensor_infos(mapped, align(offset), header.n_tensors)
            if "general.architecture" not in metadata:
                raise GGUFError("Missing required metadata: general.architecture")
        except BaseException:
            self.close()
            raise

        self._header = header
        self._metadata = metadata
        self._tensors = tensors

    def close(self) -> None:
        """Release the memory map and the file; the loader becomes unloaded."""
        if self._map is not None:
            self._map.close()
            self._map = None
        if self._file is not None:
            self._file.close()
            self._file = None
        self._header = None
        self._metadata = {}
        self._tensors = {}

    def __enter__(self) -> "ModelLoader":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @property
    def is_loaded(self) -> bool:
        return self._header is not None

    @property
    def metadata(self) -> Dict[str, str]:
        """A copy of the parsed metadata, values as text."""
        return dict(self._metadata)

    def _info(self, name: str) -> TensorInfo:
        if not self.is_loaded:
            raise ModelNotLoadedError("Model not loaded")
        try:
            return self._tensors[name]
        except KeyError:
            raise KeyError(f"Tensor not found: {name}") from None

    def load_tensor(self, name: str) -> np.ndarray:
        """Copy the named tensor out of the file into a new array."""
        info = self._info(name)
        dtype = gguf_type_to_dtype(info.type)
        shape = info.shape
        count = math.prod(shape)
        start = info.offset
        end = start + count * dtype.itemsize
        assert self._map is not None
        if end > len(self._map):
            raise GGUFError(f"Tensor data out of range: {name}")
        raw = self._map[start:end]
        return np.frombuffer(raw, dtype=dtype.numpy_dtype).reshape(shape).copy()

    def has_tensor(self, name: str) -> bool:
        return self.is_loaded and name in self._tensors

    def tensor_shape(self, name: str) -> Tuple[int, ...]:
        return self._info(name).shape

    def tensor_dtype(self, name: str) -> DType:
        return gguf_type_to_dtype(self._info(name).type)

    @property
    def architecture(self) -> str:
        return self._metadata.get("general.architecture", "")

    @property
    def tensor_count(self) -> int:
        return len(self._tensors)

    @property
    def tensor_names(self) -> List[str]:
        return list(self._tensors)

    def _lookup_int(self, *keys: str) -> Optional[int]:
        for key in keys:
            if key in self._metadata:
                return int(self._metadata[key])
        return None

    @property
    def vocab_size(self) -> int:
        value = self._lookup_int("tokenizer.ggml.tokens", "tokenizer.ggml.token_count")
        return 0 if value is None else value

    @property
    def max_sequence_length(self) -> int:
        value = self._lookup_int("model.max_sequence_length", "model.context_length")
        return DEFAULT_MAX_SEQUENCE_LENGTH if value is None else value

    @property
    def embedding_dim(self) -> int:
        value = self._lookup_int("model.embedding_length", "model.dim")
        return 0 if value is None else value

    @property
    def num_layers(self) -> int:
        value = self._lookup_int("model.layer_count", "model.num_layers")
        return 0 if value is None else value

    @property
    def num_heads(self) -> int:
        value = self._lookup_int("model.attention.head_count", "model.num_heads")
        return 0 if value is None else value

    @property
    def num_kv_heads(self) -> int:
        """Key/value head count, falling back to the attention head count."""
        if not self.is_loaded:
            return 0
        value = self._lookup_int("model.attention.head_count_kv", "model.num_kv_heads")
        return self.num_heads if value is None else value