"""Two-bit block quantization of weight vectors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

BLOCK_SIZE = 32
PACKED_BYTES = BLOCK_SIZE // 4
MAX_LEVEL = 3
_SHIFTS = np.array([0, 2, 4, 6], dtype=np.uint8)


@dataclass(frozen=True)
class INT2Block:
    """Up to 32 values stored as 2-bit levels, four per byte, with scale and offset."""

    data: bytes
    scale: float
    zero_point: float
    length: int = BLOCK_SIZE

    @classmethod
    def pack(cls, values: Sequence[float]) -> "INT2Block":
        """Quantize ``values`` (1 to 32 of them) to levels 0..3 over their range."""
        arr = np.asarray(values, dtype=np.float32).ravel()
        if not 1 <= arr.size <= BLOCK_SIZE:
            raise ValueError(f"A block holds between 1 and {BLOCK_SIZE} values")
        min_val = arr.min()
        max_val = arr.max()
        scale = np.float32((max_val - min_val) / np.float32(MAX_LEVEL))
        if scale > 0:
            levels = np.clip((arr - min_val) / scale, 0.0, float(MAX_LEVEL))
        else:
            levels = np.zeros_like(arr)
        padded = np.zeros(BLOCK_SIZE, dtype=np.uint8)
        # Truncation towards zero, as a float-to-integer cast does.
        padded[: arr.size] = levels.astype(np.uint8)
        packed = np.bitwise_or.reduce(
            padded.reshape(PACKED_BYTES, 4) << _SHIFTS, axis=1
        ).astype(np.uint8)
        return cls(packed.tobytes(), float(scale), float(min_val), int(arr.size))

    @property
    def levels(self) -> np.ndarray:
        """The stored 2-bit levels of the block's values."""
        raw = np.frombuffer(self.data, dtype=np.uint8)
        unpacked = (raw[:, None] >> _SHIFTS) & 0x3
        return unpacked.ravel()[: self.length]

    def unpack(self) -> np.ndarray:
        """Reconstruct the block's values as ``level * scale + zero_point``."""
        return (
            self.levels.astype(np.float32) * np.float32(self.scale)
            + np.float32(self.zero_point)
        )


class INT2Quantizer:
    """Quantizes a layer's weights into 2-bit blocks and multiplies with them."""

    def __init__(self) -> None:
        self._blocks: List[INT2Block] = []

    @property
    def blocks(self) -> Tuple[INT2Block, ...]:
        return tuple(self._blocks)

    def quantize_layer(
        self, weights: Sequence[float], is_critical_layer: bool = True
    ) -> None:
        """Quantize ``weights`` in blocks of 32; critical layers are left untouched."""
        if is_critical_layer:
            return
        flat = np.asarray(weights, dtype=np.float32).ravel()
        self._blocks = [
            INT2Block.pack(flat[start : start + BLOCK_SIZE])
            for start in range(0, flat.size, BLOCK_SIZE)
        ]

    def compression_ratio(self) -> float:
        """Nominal size reduction of 2-bit levels over 32-bit floats."""
        return 16.0

    def dequantize(self) -> np.ndarray:
        """All quantized weights reconstructed, in their original order."""
        if not self._blocks:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate([block.unpack() for block in self._blocks])

    def int2_matmul(
        self,
        inputs: Sequence[float],
        output: Optional[Sequence[float]] = None,
        rows: int = 1,
        cols: Optional[int] = None,
    ) -> np.ndarray:
        """Add each input row's dot product with the weights to ``output``.

        ``inputs`` is read as ``rows`` rows of stride ``cols`` (default: the
        number of weights). ``output`` gives starting values (default zeros);
        a new array is returned.
        """
        if rows <= 0:
            raise ValueError("rows must be positive")
        weights = self.dequantize()
        flat = np.asarray(inputs, dtype=np.float32).ravel()
        stride = weights.size if cols is None else cols
        if stride < 0:
            raise ValueError("cols must not be negative")
        if output is None:
            result = np.zeros(rows, dtype=np.float32)
        else:
            result = np.array(output, dtype=np.float32).ravel()
            if result.size != rows:
                raise ValueError(f"output must hold {rows} values")
        if weights.size == 0:
            return result
        needed = (rows - 1) * stride + weights.size
        if flat.size < needed:
            raise ValueError(f"inputs must hold at least {needed} values")
        row_values = np.stack(
            [flat[r * stride : r * stride + weights.size] for r in range(rows)]
        )
        result += row_values @ weights
        return result