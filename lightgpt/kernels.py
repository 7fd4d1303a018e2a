"""Reference numeric kernels: matrix products, simple quantizers and benchmark results."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np

DEFAULT_BLOCK_SIZE = 64
INT8_LIMIT = 127.0
INT4_MAX_LEVEL = 15.0
INT4_RANGE = (-2.0, 2.0)
_SPEEDUP_RANGE = (0.1, 100.0)


def generate_weights(size: int, std: float = 0.02, seed: int = 42) -> np.ndarray:
    """Return ``size`` float32 values drawn from a normal distribution around zero."""
    if size < 0:
        raise ValueError("size must not be negative")
    if std < 0:
        raise ValueError("std must not be negative")
    rng = np.random.default_rng(seed)
    return rng.normal(0.0, std, size).astype(np.float32)


def _as_matrix(values: Sequence[float], rows: int, cols: int, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float32)
    if arr.size != rows * cols:
        raise ValueError(f"{name} must hold {rows} x {cols} values")
    return arr.reshape(rows, cols)


def _check_dims(m: int, n: int, k: int) -> None:
    if m <= 0 or n <= 0 or k <= 0:
        raise ValueError("m, n and k must be positive")


def baseline_matmul(
    a: Sequence[float], b: Sequence[float], m: int, n: int, k: int
) -> np.ndarray:
    """Multiply an ``m x k`` matrix by a ``k x n`` matrix in one step."""
    _check_dims(m, n, k)
    left = _as_matrix(a, m, k, "a")
    right = _as_matrix(b, k, n, "b")
    return (left @ right).astype(np.float32)


def blocked_matmul(
    a: Sequence[float],
    b: Sequence[float],
    m: int,
    n: int,
    k: int,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> np.ndarray:
    """Multiply as :func:`baseline_matmul`, accumulating square blocks of ``block_size``."""
    _check_dims(m, n, k)
    if block_size <= 0:
        raise ValueError("block_size must be positive")
    left = _as_matrix(a, m, k, "a")
    right = _as_matrix(b, k, n, "b")
    result = np.zeros((m, n), dtype=np.float32)
    for ii in range(0, m, block_size):
        rows = slice(ii, min(ii + block_size, m))
        for jj in range(0, n, block_size):
            cols = slice(jj, min(jj + block_size, n))
            for kk in range(0, k, block_size):
                inner = slice(kk, min(kk + block_size, k))
                result[rows, cols] += left[rows, inner] @ right[inner, cols]
    return result


def int8_quantize(data: Sequence[float]) -> np.ndarray:
    """Scale values by 127, clamp to [-127, 127] and truncate to int8."""
    arr = np.asarray(data, dtype=np.float32).ravel()
    scaled = np.clip(arr * np.float32(INT8_LIMIT), -INT8_LIMIT, INT8_LIMIT)
    return np.trunc(scaled).astype(np.int8)


def int4_pack(data: Sequence[float]) -> bytes:
    """Map values in [-2, 2] to levels 0..15 and pack two per byte, low nibble first.

    An odd trailing value is paired with level 0.
    """
    arr = np.asarray(data, dtype=np.float32).ravel()
    low, high = INT4_RANGE
    levels = np.clip(
        (arr - np.float32(low)) / np.float32(high - low) * np.float32(INT4_MAX_LEVEL),
        0.0,
        INT4_MAX_LEVEL,
    ).astype(np.uint8)
    if levels.size % 2:
        levels = np.append(levels, np.uint8(0))
    pairs = levels.reshape(-1, 2) & 0x0F
    packed = pairs[:, 0] | (pairs[:, 1] << 4)
    return packed.astype(np.uint8).tobytes()


def complex_formula(
    a: Sequence[float], b: Sequence[float], c: Sequence[float]
) -> np.ndarray:
    """Element-wise ``(a*b + c) + sqrt(a) + b*c + a/c`` in float32."""
    va = np.asarray(a, dtype=np.float32)
    vb = np.asarray(b, dtype=np.float32)
    vc = np.asarray(c, dtype=np.float32)
    if not va.shape == vb.shape == vc.shape:
        raise ValueError("a, b and c must have the same shape")
    return ((va * vb + vc) + np.sqrt(va) + vb * vc + va / vc).astype(np.float32)


@dataclass(frozen=True)
class BenchmarkResult:
    """Timings and quality figures of one baseline-versus-optimized comparison."""

    baseline_time_ms: float
    optimized_time_ms: float
    accuracy_loss: float = 0.0
    memory_saved_bytes: int = 0
    passed_correctness: bool = True

    @property
    def speedup(self) -> float:
        """Baseline time over optimized time; infinite when the latter is zero."""
        if self.optimized_time_ms == 0:
            return math.inf
        return self.baseline_time_ms / self.optimized_time_ms

    def format(self) -> str:
        """A multi-line report of the result."""
        verdict = "PASS" if self.passed_correctness else "FAIL"
        return "\n".join(
            [
                "Benchmark Results:",
                f"  Baseline Time:    {self.baseline_time_ms:8.2f} ms",
                f"  Optimized Time:   {self.optimized_time_ms:8.2f} ms",
                f"  Speedup:          {self.speedup:8.2f}x",
                f"  Accuracy Loss:    {self.accuracy_loss * 100:8.2f}%",
                f"  Memory Saved:     {self.memory_saved_bytes // 1024:8d} KB",
                f"  Correctness:      {verdict}",
            ]
        )


def geometric_mean_speedup(results: Iterable[BenchmarkResult]) -> Optional[float]:
    """Geometric mean of the speedups strictly between 0.1 and 100.

    Returns ``None`` when no result falls in that range.
    """
    low, high = _SPEEDUP_RANGE
    valid = [r.speedup for r in results if low < r.speedup < high]
    if not valid:
        return None
    return math.prod(valid) ** (1.0 / len(valid))