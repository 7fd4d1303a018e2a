import pytest

from lightgpt.tokenizers import VocabTokenizer, WordTokenizer


@pytest.fixture
def word_tokenizer():
    return WordTokenizer()


@pytest.fixture
def vocab_tokenizer(tmp_path):
    tokenizer = VocabTokenizer()
    tokenizer.load_from_gguf(tmp_path / "model.gguf")
    return tokenizer


def test_word_encode_question(word_tokenizer):
    assert word_tokenizer.encode("What is the capital of France?") == [
        1, 1000, 1001, 1002, 1003, 1004, 1005, 1009,
    ]


def test_word_encode_unknown_and_case(word_tokenizer):
    assert word_tokenizer.encode("HELLO banana") == [1, 1007, 100]


def test_word_encode_drops_punctuation_outside_vocab(word_tokenizer):
    assert word_tokenizer.encode("Hello! world.") == [1, 1007, 1008]


def test_word_encode_empty_is_bos_only(word_tokenizer):
    assert word_tokenizer.encode("   ") == [1]


def test_word_round_trip(word_tokenizer):
    assert word_tokenizer.decode(word_tokenizer.encode("hello world")) == "<s> hello world"


def test_word_decode_skips_unknown(word_tokenizer):
    assert word_tokenizer.decode([100, 1007, 99999]) == "hello"


def test_vocab_before_loading_is_all_unknown():
    tokenizer = VocabTokenizer()
    assert tokenizer.encode("the capital") == [1, 0, 0]
    assert tokenizer.decode([1, 3681]) == ""


def test_vocab_encode_after_loading(vocab_tokenizer):
    assert vocab_tokenizer.encode("the capital of France") == [1, 278, 7483, 310, 3444]
    assert len(vocab_tokenizer.vocab) == 7


def test_vocab_is_case_sensitive(vocab_tokenizer):
    assert vocab_tokenizer.encode("paris Paris") == [1, 0, 3681]


def test_vocab_decode(vocab_tokenizer):
    assert vocab_tokenizer.decode([1, 0, 3681]) == "<s> Paris"


def test_vocab_round_trip(vocab_tokenizer):
    text = "the capital of France"
    assert vocab_tokenizer.decode(vocab_tokenizer.encode(text)) == "<s> " + text