"""Small word-level tokenizers with fixed vocabularies."""

from __future__ import annotations

from os import PathLike
from typing import Dict, Iterable, List, Mapping, Union

BOS_ID = 1

_WORD_VOCAB: Dict[str, int] = {
    "<s>": 1,
    "</s>": 2,
    "what": 1000,
    "is": 1001,
    "the": 1002,
    "capital": 1003,
    "of": 1004,
    "france": 1005,
    "paris": 1006,
    "hello": 1007,
    "world": 1008,
    "?": 1009,
}

_GGUF_VOCAB: Dict[str, int] = {
    "<s>": 1,
    "</s>": 2,
    "the": 278,
    "capital": 7483,
    "of": 310,
    "France": 3444,
    "Paris": 3681,
}


def _decode(tokens: Iterable[int], id_to_word: Mapping[int, str]) -> str:
    return " ".join(id_to_word[t] for t in tokens if t in id_to_word)


class WordTokenizer:
    """Case-insensitive word tokenizer that splits on spaces and ``?.!``."""

    UNK_ID = 100
    _SEPARATORS = frozenset(" ?.!")

    def __init__(self) -> None:
        self.vocab: Dict[str, int] = dict(_WORD_VOCAB)
        self._id_to_word = {i: w for w, i in self.vocab.items()}

    def _word_id(self, word: str) -> int:
        return self.vocab.get(word.lower(), self.UNK_ID)

    def encode(self, text: str) -> List[int]:
        """Return token ids, starting with the BOS token."""
        tokens = [BOS_ID]
        word = ""
        for char in text:
            if char not in self._SEPARATORS:
                word += char
                continue
            if word:
                tokens.append(self._word_id(word))
                word = ""
            if char != " " and char in self.vocab:
                tokens.append(self.vocab[char])
        if word:
            tokens.append(self._word_id(word))
        return tokens

    def decode(self, tokens: Iterable[int]) -> str:
        """Join the known tokens with spaces; unknown ids are dropped."""
        return _decode(tokens, self._id_to_word)


class VocabTokenizer:
    """Whitespace tokenizer over a small case-sensitive vocabulary."""

    UNK_ID = 0

    def __init__(self) -> None:
        self.vocab: Dict[str, int] = {}
        self._id_to_word: Dict[int, str] = {}

    def load_from_gguf(self, model_path: Union[str, PathLike]) -> None:
        """Install the built-in vocabulary used with ``model_path``."""
        self.vocab = dict(_GGUF_VOCAB)
        self._id_to_word = {i: w for w, i in self.vocab.items()}

    def encode(self, text: str) -> List[int]:
        """Return token ids, starting with the BOS token."""
        return [BOS_ID] + [self.vocab.get(word, self.UNK_ID) for word in text.split()]

    def decode(self, tokens: Iterable[int]) -> str:
        """Join the known tokens with spaces; unknown ids are dropped."""
        return _decode(tokens, self._id_to_word)