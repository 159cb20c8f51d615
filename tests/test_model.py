"""Tests for the model registry and the language model adapter contract."""

from __future__ import annotations

import pytest
import torch

from stegochat import ModelInfo, StegoTokenizationError, get_model_info, list_models
from stegochat.model import PRIMARY_MODEL, _resolve_device


class TestRegistry:
    def test_list_models(self) -> None:
        models = list_models()
        assert all(isinstance(m, ModelInfo) for m in models)
        assert PRIMARY_MODEL in {m.name for m in models}

    def test_get_model_info(self) -> None:
        info = get_model_info(PRIMARY_MODEL)
        assert info is not None
        assert not info.gated
        assert get_model_info("no/such-model") is None

    def test_resolve_device(self) -> None:
        assert _resolve_device("cpu") == torch.device("cpu")
        assert _resolve_device("auto").type in ("cpu", "cuda")


class TestLanguageModelContract:
    def test_distribution_sums_to_one(self, toy_model) -> None:
        probs = toy_model.distribution(toy_model.tokenize("- A:"))
        assert probs.dtype == torch.float64
        assert probs.shape == (toy_model.vocab_size,)
        assert abs(probs.sum().item() - 1.0) < 1e-9
        assert bool((probs >= 0).all())

    def test_distribution_is_deterministic(self, toy_model) -> None:
        ids = toy_model.tokenize("- A: hi\n- B:")
        assert torch.equal(toy_model.distribution(ids), toy_model.distribution(ids))

    def test_temperature_sharpens(self, toy_model) -> None:
        ids = toy_model.tokenize("- B: x")
        cold = toy_model.distribution(ids, temperature=0.5)
        warm = toy_model.distribution(ids, temperature=2.0)
        assert cold.max().item() > warm.max().item()

    def test_token_id(self, toy_model) -> None:
        assert toy_model.detokenize([toy_model.token_id("\n")]) == "\n"
        with pytest.raises(StegoTokenizationError, match="single token"):
            toy_model.token_id("ab")

    def test_encode_text(self, toy_model) -> None:
        assert toy_model.detokenize(toy_model.encode_text(" hi")) == " hi"
        with pytest.raises(StegoTokenizationError):
            toy_model.encode_text("€")

    def test_ids_containing(self, toy_model) -> None:
        assert toy_model.ids_containing("\n") == frozenset({toy_model.token_id("\n")})
        assert toy_model.ids_containing("\n") is toy_model.ids_containing("\n")

    def test_ids_starting_with(self, toy_model) -> None:
        assert toy_model.ids_starting_with(" ") == frozenset({toy_model.token_id(" ")})
        assert toy_model.ids_starting_with("ab") == frozenset()
        assert toy_model.ids_starting_with(" ") is toy_model.ids_starting_with(" ")
