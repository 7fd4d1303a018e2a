"""Speculative decoding: a small predictor drafts tokens and a full model checks them."""

from __future__ import annotations

from typing import List, Protocol, Sequence

import numpy as np

EMBED_DIM = 128
HIDDEN_DIM = 256
DRAFT_SIZE = 4
_TOKEN_MASK = 0xFFFFFFFF


class NextTokenModel(Protocol):
    """Anything that can name the token that follows a context."""

    def predict_next_token(self, context: Sequence[int]) -> int: ...


class DraftPredictor(Protocol):
    """Anything that can draft the next few tokens after a token."""

    def predict_next_tokens(
        self, current_token: int, num_predictions: int = DRAFT_SIZE
    ) -> List[int]: ...


class TinyPredictor:
    """A single-step recurrent draft model with a ReLU hidden layer.

    ``embed_weights`` holds one 128-value row per token, ``lstm_weights``
    the 256 gate weights and ``output_weights`` one 256-value row per
    output token.
    """

    def __init__(
        self,
        embed_weights: Sequence[float],
        lstm_weights: Sequence[float],
        output_weights: Sequence[float],
    ) -> None:
        embed = np.asarray(embed_weights, dtype=np.float32).ravel()
        lstm = np.asarray(lstm_weights, dtype=np.float32).ravel()
        output = np.asarray(output_weights, dtype=np.float32).ravel()
        if embed.size == 0 or embed.size % EMBED_DIM:
            raise ValueError(f"embed_weights must hold a multiple of {EMBED_DIM} values")
        if lstm.size != HIDDEN_DIM:
            raise ValueError(f"lstm_weights must hold {HIDDEN_DIM} values")
        if output.size == 0 or output.size % HIDDEN_DIM:
            raise ValueError(f"output_weights must hold a multiple of {HIDDEN_DIM} values")
        self._embed = embed.reshape(-1, EMBED_DIM)
        self._lstm = lstm
        self._output = output.reshape(-1, HIDDEN_DIM)

    @property
    def vocab_size(self) -> int:
        """Number of tokens the predictor can emit."""
        return self._output.shape[0]

    def hidden_state(self, current_token: int) -> np.ndarray:
        """The hidden activations after one step from ``current_token``."""
        if not 0 <= current_token < self._embed.shape[0]:
            raise ValueError(f"Token {current_token} has no embedding")
        embed = self._embed[current_token]
        return np.maximum(np.float32(0.0), np.tile(embed, HIDDEN_DIM // EMBED_DIM) * self._lstm)

    def scores(self, current_token: int) -> np.ndarray:
        """Score of every output token after ``current_token``."""
        return self._output @ self.hidden_state(current_token)

    def predict_next_tokens(
        self, current_token: int, num_predictions: int = DRAFT_SIZE
    ) -> List[int]:
        """The ``num_predictions`` highest-scoring tokens, best first.

        Equal scores are ordered by token id.
        """
        if not 0 <= num_predictions <= self.vocab_size:
            raise ValueError(
                f"num_predictions must be between 0 and {self.vocab_size}"
            )
        scores = self.scores(current_token)
        order = np.argsort(-scores, kind="stable")
        return [int(token) for token in order[:num_predictions]]


class SpeculativeDecoder:
    """Extends a context using drafts that a full model confirms one by one."""

    def __init__(self, predictor: DraftPredictor) -> None:
        self.predictor = predictor
        self.draft_size = DRAFT_SIZE

    def speculative_generate(
        self,
        full_model: NextTokenModel,
        context: Sequence[int],
        max_new_tokens: int,
    ) -> List[int]:
        """Return ``context`` followed by at least ``max_new_tokens`` new tokens.

        Each round drafts tokens after the last one. A draft is accepted while
        the full model, given the context with that draft appended, predicts the
        draft itself; the first mismatch ends the round. When nothing is
        accepted the full model's own next token is appended. A round may add
        several tokens, so the result can run past the requested length.
        """
        if max_new_tokens < 0:
            raise ValueError("max_new_tokens must not be negative")
        result = list(context)
        target = len(result) + max_new_tokens
        if max_new_tokens and not result:
            raise ValueError("context must not be empty")

        while len(result) < target:
            predictions = self.predictor.predict_next_tokens(result[-1], self.draft_size)
            trial = list(result)
            accepted: List[int] = []
            for prediction in predictions:
                trial.append(prediction)
                if full_model.predict_next_token(trial) != prediction:
                    break
                accepted.append(prediction)
            if accepted:
                result.extend(accepted)
            else:
                result.append(full_model.predict_next_token(result))
        return result


class IncrementModel:
    """Stand-in full model whose next token is the last token plus one."""

    def predict_next_token(self, context: Sequence[int]) -> int:
        if not context:
            raise ValueError("context must not be empty")
        return (context[-1] + 1) & _TOKEN_MASK