"""Key/value cache for autoregressive attention."""

from __future__ import annotations

from typing import Tuple

import numpy as np

from lightgpt.gguf import DType


class KVCache:
    """Per-position storage of keys and values, shaped [batch, heads, seq, head_dim]."""

    def __init__(
        self,
        batch_size: int,
        num_heads: int,
        head_dim: int,
        max_seq_len: int,
        dtype: DType = DType.F32,
    ) -> None:
        if min(batch_size, num_heads, head_dim, max_seq_len) <= 0:
            raise ValueError("All cache dimensions must be positive")
        self.batch_size = batch_size
        self.num_heads = num_heads
        self.head_dim = head_dim
        self.max_seq_len = max_seq_len
        self.dtype = dtype
        self.seq_len = 0
        self._k, self._v = self._empty(), self._empty()

    def _empty(self) -> np.ndarray:
        shape = (self.batch_size, self.num_heads, self.max_seq_len, self.head_dim)
        return np.zeros(shape, dtype=self.dtype.numpy_dtype)

    def get(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return copies of the whole key and value caches."""
        return self._k.copy(), self._v.copy()

    def _timestep(self, tensor: np.ndarray) -> np.ndarray:
        flat = np.ascontiguousarray(tensor, dtype=self.dtype.numpy_dtype).reshape(-1)
        size = self.batch_size * self.num_heads * self.head_dim
        return flat[:size].reshape(self.batch_size, self.num_heads, self.head_dim)

    def update(self, k: np.ndarray, v: np.ndarray, seq_len: int) -> None:
        """Store one timestep of ``k`` and ``v`` at position ``seq_len``.

        Inputs are [batch, heads, steps, head_dim]; the first timestep is
        written and the cache length becomes ``seq_len + 1``.
        """
        k, v = np.asarray(k), np.asarray(v)
        if k.ndim != 4 or v.ndim != 4:
            raise ValueError(
                "K and V must be 4D tensors [batch, num_heads, seq_len, head_dim]"
            )
        expected = (self.batch_size, self.num_heads, self.head_dim)
        for tensor in (k, v):
            if (tensor.shape[0], tensor.shape[1], tensor.shape[3]) != expected:
                raise ValueError("Invalid input tensor shapes for KV cache update")
            if tensor.shape[2] < 1:
                raise ValueError("Invalid input tensor shapes for KV cache update")
        if not 0 <= seq_len < self.max_seq_len:
            raise ValueError(
                f"Position {seq_len} outside cache of length {self.max_seq_len}"
            )
        self._k[:, :, seq_len, :] = self._timestep(k)
        self._v[:, :, seq_len, :] = self._timestep(v)
        self.seq_len = seq_len + 1

    def clear(self) -> None:
        """Zero the caches and reset the length."""
        self.seq_len = 0
        self._k, self._v = self._empty(), self._empty()