import struct

import numpy as np
import pytest

from lightgpt.gguf import DType, GGUFError, GGUFValueType
from lightgpt.model_loader import ModelLoader, ModelNotLoadedError


class _Builder:
    def __init__(self):
        self.buf = bytearray()

    def pad(self):
        while len(self.buf) % 8:
            self.buf.append(0)

    def raw(self, fmt, *values):
        self.buf += struct.pack("<" + fmt, *values)

    def text(self, value):
        encoded = value.encode()
        self.raw("Q", len(encoded))
        self.buf += encoded

    def kv_key(self, key, tag):
        self.text(key)
        self.pad()
        self.raw("I", int(tag))

    def kv_string(self, key, value):
        self.kv_key(key, GGUFValueType.STRING)
        self.text(value)
        self.pad()
        self.pad()

    def kv_scalar(self, key, tag, fmt, value):
        self.kv_key(key, tag)
        self.raw(fmt, value)
        self.pad()


def _build(kvs, tensors=()):
    """kvs: list of callables on a builder; tensors: (name, array, type_code)."""
    b = _Builder()
    b.raw("4sIQQ", b"GGUF", 3, len(tensors), len(kvs))
    for write in kvs:
        write(b)
    b.pad()
    table_entries = []
    for name, array, type_code in tensors:
        table_entries.append((name, array, type_code))
    # Compute table size first to know where data starts.
    table = _Builder()
    table.buf = bytearray(len(b.buf))
    offsets = []
    for name, array, type_code in table_entries:
        table.text(name)
        table.raw("I", array.ndim)
        for dim in array.shape:
            table.raw("Q", dim)
        table.raw("I", type_code)
        table.raw("Q", 0)
    data_start = len(table.buf)
    data_start += (-data_start) % 8
    cursor = data_start
    for _, array, _ in table_entries:
        offsets.append(cursor)
        cursor += array.astype("<f4").nbytes
        cursor += (-cursor) % 8
    for (name, array, type_code), offset in zip(table_entries, offsets):
        b.text(name)
        b.raw("I", array.ndim)
        for dim in array.shape:
            b.raw("Q", dim)
        b.raw("I", type_code)
        b.raw("Q", offset)
    for (_, array, _), offset in zip(table_entries, offsets):
        b.buf += bytes(offset - len(b.buf))
        b.buf += array.astype("<f4").tobytes()
    b.pad()
    return bytes(b.buf)


def _arch(value="llama"):
    return lambda b: b.kv_string("general.architecture", value)


def _u32(key, value):
    return lambda b: b.kv_scalar(key, GGUFValueType.UINT32, "I", value)


@pytest.fixture
def weights():
    return np.arange(6, dtype=np.float32).reshape(2, 3) / 4


@pytest.fixture
def model_file(tmp_path, weights):
    def u32_array(b):
        b.kv_key("tokenizer.ggml.scores", GGUFValueType.ARRAY)
        b.raw("IQ", int(GGUFValueType.UINT32), 3)
        b.raw("III", 7, 8, 9)
        b.pad()

    def str_array(b):
        b.kv_key("tokenizer.ggml.tokens", GGUFValueType.ARRAY)
        b.raw("IQ", int(GGUFValueType.STRING), 2)
        for word in ("ab", "cde"):
            b.text(word)
            b.pad()
        b.pad()

    data = _build(
        [
            _arch(),
            u32_array,
            str_array,
            _u32("model.embedding_length", 64),
            _u32("model.layer_count", 22),
            _u32("model.attention.head_count", 32),
            _u32("tokenizer.ggml.token_count", 32000),
        ],
        [("tok_embeddings", weights, 0), ("half", np.ones(4, np.float32), 1)],
    )
    path = tmp_path / "model.gguf"
    path.write_bytes(data)
    return path


def test_loads_architecture_and_tensor_table(model_file):
    with ModelLoader(model_file) as loader:
        assert loader.is_loaded
        assert loader.architecture == "llama"
        assert loader.tensor_count == 2
        assert sorted(loader.tensor_names) == ["half", "tok_embeddings"]
        assert loader.has_tensor("tok_embeddings")
        assert not loader.has_tensor("missing")


def test_load_tensor_round_trips_data(model_file, weights):
    with ModelLoader(model_file) as loader:
        assert loader.tensor_shape("tok_embeddings") == (2, 3)
        assert loader.tensor_dtype("tok_embeddings") is DType.F32
        tensor = loader.load_tensor("tok_embeddings")
    np.testing.assert_array_equal(tensor, weights)
    tensor[0, 0] = 42.0
    assert tensor[0, 0] == 42.0


def test_unsupported_tensor_type(model_file):
    with ModelLoader(model_file) as loader:
        with pytest.raises(GGUFError):
            loader.tensor_dtype("half")
        with pytest.raises(GGUFError):
            loader.load_tensor("half")


def test_missing_tensor_raises_key_error(model_file):
    with ModelLoader(model_file) as loader:
        with pytest.raises(KeyError):
            loader.load_tensor("missing")
        with pytest.raises(KeyError):
            loader.tensor_shape("missing")


def test_numeric_metadata_and_skipped_arrays(model_file):
    with ModelLoader(model_file) as loader:
        assert loader.embedding_dim == 64
        assert loader.num_layers == 22
        assert loader.num_heads == 32
        assert loader.num_kv_heads == loader.num_heads
        assert loader.vocab_size == 32000
        assert loader.max_sequence_length == 2048
        assert "tokenizer.ggml.scores" not in loader.metadata
        assert "tokenizer.ggml.tokens" not in loader.metadata


def test_alternative_keys(tmp_path):
    path = tmp_path / "alt.gguf"
    path.write_bytes(
        _build(
            [
                _arch("gpt2"),
                _u32("model.context_length", 4096),
                _u32("model.dim", 128),
                _u32("model.num_layers", 4),
                _u32("model.num_heads", 8),
                _u32("model.num_kv_heads", 2),
            ]
        )
    )
    loader = ModelLoader()
    loader.load(path)
    assert loader.max_sequence_length == 4096
    assert loader.embedding_dim == 128
    assert loader.num_layers == 4
    assert loader.num_heads == 8
    assert loader.num_kv_heads == 2
    loader.close()
    assert not loader.is_loaded


def test_float_scalar_kept_as_raw_bits(tmp_path):
    path = tmp_path / "f.gguf"
    path.write_bytes(
        _build([_arch(), lambda b: b.kv_scalar("x.eps", GGUFValueType.FLOAT32, "f", 1.0)])
    )
    with ModelLoader(path) as loader:
        expected = struct.unpack("<I", struct.pack("<f", 1.0))[0]
        assert loader.metadata["x.eps"] == str(expected)


def test_defaults_when_not_loaded():
    loader = ModelLoader()
    assert not loader.is_loaded
    assert loader.architecture == ""
    assert loader.tensor_count == 0
    assert loader.tensor_names == []
    assert loader.max_sequence_length == 2048
    assert loader.vocab_size == 0
    assert loader.num_kv_heads == 0
    assert not loader.has_tensor("x")
    with pytest.raises(ModelNotLoadedError):
        loader.load_tensor("x")


def test_missing_architecture_fails(tmp_path):
    path = tmp_path / "noarch.gguf"
    path.write_bytes(_build([_u32("model.layer_count", 2)]))
    loader = ModelLoader()
    with pytest.raises(GGUFError, match="general.architecture"):
        loader.load(path)
    assert not loader.is_loaded


def test_bad_magic_and_small_file(tmp_path):
    bad = tmp_path / "bad.gguf"
    bad.write_bytes(b"GGML" + bytes(40))
    with pytest.raises(GGUFError, match="magic"):
        ModelLoader(bad)
    small = tmp_path / "small.gguf"
    small.write_bytes(b"GGUF")
    with pytest.raises(GGUFError, match="too small"):
        ModelLoader(small)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ModelLoader(tmp_path / "absent.gguf")


def test_close_releases_model(model_file):
    loader = ModelLoader(model_file)
    with loader:
        assert loader.tensor_count == 2
    assert not loader.is_loaded
    assert loader.tensor_count == 0
    with pytest.raises(ModelNotLoadedError):
        loader.tensor_shape("tok_embeddings")