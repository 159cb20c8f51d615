"""Shared pytest fixtures for StegoChat tests."""

from __future__ import annotations

from collections.abc import Sequence

import pytest
import torch

from stegochat import Cypher, LanguageModel, Pipeline, StegoTokenizationError

# Character-level vocabulary: the delimiter plus printable ASCII
ALPHABET = "\n" + "".join(chr(c) for c in range(32, 127))


class ToyLanguageModel(LanguageModel):
    """Deterministic character model conditioned on the whole context.

    Logits are a seeded random row for the previous character plus a row
    selected by a position-weighted hash of the full context.  A strong bias
    towards a space after ``':'`` makes generated chat lines open with the
    usual leading space.
    """

    CONTEXT_STATES = 257

    def __init__(self, seed: int = 1234) -> None:
        super().__init__()
        generator = torch.Generator().manual_seed(seed)
        size = len(ALPHABET)
        self._bigram = torch.randn(size, size, generator=generator, dtype=torch.float64) * 2.5
        self._bigram[ALPHABET.index(":"), ALPHABET.index(" ")] += 20.0
        self._state = torch.randn(
            self.CONTEXT_STATES, size, generator=generator, dtype=torch.float64
        )
        self._index = {char: i for i, char in enumerate(ALPHABET)}

    @property
    def vocab_size(self) -> int:
        return len(ALPHABET)

    def tokenize(self, text: str) -> list[int]:
        try:
            return [self._index[char] for char in text]
        except KeyError as exc:
            raise StegoTokenizationError(f"Character {exc} is not in the vocabulary") from exc

    def detokenize(self, token_ids: Sequence[int]) -> str:
        return "".join(ALPHABET[i] for i in token_ids)

    def logits(self, context_ids: Sequence[int]) -> torch.Tensor:
        state = sum((i + 1) * t for i, t in enumerate(context_ids)) % self.CONTEXT_STATES
        return self._bigram[context_ids[-1]] + self._state[state]


@pytest.fixture(scope="session")
def toy_model() -> ToyLanguageModel:
    """Session-scoped toy model shared by every codec."""
    return ToyLanguageModel()


@pytest.fixture(scope="session")
def other_model() -> ToyLanguageModel:
    """A toy model with different weights, for wrong-model tests."""
    return ToyLanguageModel(seed=4321)


@pytest.fixture(scope="session")
def cypher() -> Cypher:
    """Cypher with a low iteration count to keep key derivation fast."""
    return Cypher(iterations=1_000)


@pytest.fixture(scope="session")
def pipeline(toy_model: ToyLanguageModel, cypher: Cypher) -> Pipeline:
    """Pipeline over the toy model with the default generation config."""
    return Pipeline(toy_model, cypher=cypher)
