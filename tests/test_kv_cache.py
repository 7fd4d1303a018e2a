import numpy as np
import pytest

from lightgpt.gguf import DType
from lightgpt.kv_cache import KVCache

B, H, D, S = 2, 3, 4, 5


def _step(seed):
    rng = np.random.default_rng(seed)
    return rng.standard_normal((B, H, 1, D)).astype(np.float32)


@pytest.mark.parametrize("dims", [(0, H, D, S), (B, -1, D, S), (B, H, 0, S), (B, H, D, 0)])
def test_rejects_non_positive_dimensions(dims):
    with pytest.raises(ValueError):
        KVCache(*dims)


def test_starts_empty():
    cache = KVCache(B, H, D, S)
    k, v = cache.get()
    assert k.shape == (B, H, S, D)
    assert v.shape == (B, H, S, D)
    assert not k.any() and not v.any()
    assert cache.seq_len == 0


def test_update_writes_timestep():
    cache = KVCache(B, H, D, S)
    k_in, v_in = _step(1), _step(2)
    cache.update(k_in, v_in, 0)
    k, v = cache.get()
    np.testing.assert_array_equal(k[:, :, 0, :], k_in[:, :, 0, :])
    np.testing.assert_array_equal(v[:, :, 0, :], v_in[:, :, 0, :])
    assert not k[:, :, 1:, :].any()
    assert cache.seq_len == 1


def test_update_at_later_position():
    cache = KVCache(B, H, D, S)
    k_in, v_in = _step(3), _step(4)
    cache.update(k_in, v_in, 3)
    k, v = cache.get()
    np.testing.assert_array_equal(k[:, :, 3, :], k_in[:, :, 0, :])
    np.testing.assert_array_equal(v[:, :, 3, :], v_in[:, :, 0, :])
    assert not k[:, :, :3, :].any()
    assert cache.seq_len == 4


def test_get_returns_copies():
    cache = KVCache(B, H, D, S)
    k, _ = cache.get()
    k[...] = 1.0
    assert not cache.get()[0].any()


def test_rejects_non_4d_inputs():
    cache = KVCache(B, H, D, S)
    with pytest.raises(ValueError, match="4D"):
        cache.update(np.zeros((B, H, D)), np.zeros((B, H, 1, D)), 0)


@pytest.mark.parametrize("shape", [(B + 1, H, 1, D), (B, H + 1, 1, D), (B, H, 1, D + 1)])
def test_rejects_mismatched_shapes(shape):
    cache = KVCache(B, H, D, S)
    with pytest.raises(ValueError, match="Invalid input"):
        cache.update(np.zeros(shape), np.zeros(shape), 0)


def test_rejects_position_past_end():
    cache = KVCache(B, H, D, S)
    with pytest.raises(ValueError):
        cache.update(_step(5), _step(6), S)


def test_clear_resets():
    cache = KVCache(B, H, D, S, DType.F32)
    cache.update(_step(7), _step(8), 2)
    cache.clear()
    k, v = cache.get()
    assert cache.seq_len == 0
    assert not k.any() and not v.any()
    assert k.dtype == np.float32


def test_half_precision_cache():
    cache = KVCache(B, H, D, S, DType.F16)
    k_in = _step(9)
    cache.update(k_in, k_in, 0)
    k, _ = cache.get()
    assert k.dtype == np.float16
    np.testing.assert_allclose(k[:, :, 0, :], k_in[:, :, 0, :], rtol=1e-2, atol=1e-2)