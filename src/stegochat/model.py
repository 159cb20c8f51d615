"""Model loading, configuration, determinism setup and the language model adapter."""

from __future__ import annotations

import abc
import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass

import torch
from dotenv import load_dotenv
from transformers import (
    AutoModelForCausalLM,
    AutoTokenizer,
    PreTrainedModel,
    PreTrainedTokenizerBase,
)

from .utils import StegoModelError, StegoTokenizationError

logger = logging.getLogger(__name__)

# Default model and fallback
PRIMARY_MODEL = "openai-community/gpt2"
FALLBACK_MODEL = "distilbert/distilgpt2"


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelInfo:
    """Metadata for a recommended model."""

    name: str
    description: str
    parameters: str
    gated: bool = False


MODEL_REGISTRY: tuple[ModelInfo, ...] = (
    ModelInfo(
        name="openai-community/gpt2",
        description="GPT-2 small, default chat disguise model (recommended)",
        parameters="124M",
    ),
    ModelInfo(
        name="distilbert/distilgpt2",
        description="Distilled GPT-2 used as fallback",
        parameters="82M",
    ),
    ModelInfo(
        name="openai-community/gpt2-medium",
        description="Larger GPT-2 variant, more natural chat lines",
        parameters="355M",
    ),
    ModelInfo(
        name="HuggingFaceTB/SmolLM-135M",
        description="Tiny modern model with a larger vocabulary",
        parameters="135M",
    ),
    ModelInfo(
        name="meta-llama/Llama-3.2-1B",
        description="High-quality Meta model (requires HF_TOKEN)",
        parameters="1B",
        gated=True,
    ),
)


def list_models() -> tuple[ModelInfo, ...]:
    """Return all recommended models."""
    return MODEL_REGISTRY


def get_model_info(model_name: str) -> ModelInfo | None:
    """Look up a model by name. Returns ``None`` if not in the registry."""
    for info in MODEL_REGISTRY:
        if info.name == model_name:
            return info
    return None


# ---------------------------------------------------------------------------
# Language model adapter
# ---------------------------------------------------------------------------


class LanguageModel(abc.ABC):
    """Tokenizer plus next-token distribution over a fixed vocabulary.

    Every codec in the package is built on this contract.  Implementations
    must be deterministic: the same context always yields the same logits.
    """

    def __init__(self) -> None:
        self._containing: dict[str, frozenset[int]] = {}
        self._starting: dict[str, frozenset[int]] = {}

    @property
    @abc.abstractmethod
    def vocab_size(self) -> int:
        """Number of token ids (ids are ``0 .. vocab_size - 1``)."""

    @abc.abstractmethod
    def tokenize(self, text: str) -> list[int]:
        """Return the token ids for *text* (no special tokens added)."""

    @abc.abstractmethod
    def detokenize(self, token_ids: Sequence[int]) -> str:
        """Return the text for *token_ids*."""

    @abc.abstractmethod
    def logits(self, context_ids: Sequence[int]) -> torch.Tensor:
        """Return next-token logits (shape ``[vocab_size]``) after *context_ids*."""

    @property
    def special_token_ids(self) -> frozenset[int]:
        """Ids never emitted by the generative coder."""
        return frozenset()

    def distribution(
        self, context_ids: Sequence[int], temperature: float = 1.0
    ) -> torch.Tensor:
        """Return the float64 next-token probability distribution."""
        logits = self.logits(context_ids).to(dtype=torch.float64)
        if temperature != 1.0:
            logits = logits / temperature
        return torch.softmax(logits, dim=-1)

    def encode_text(self, text: str) -> list[int]:
        """Tokenize *text*, checking that it detokenizes back unchanged.

        Raises:
            StegoTokenizationError: If *text* is not representable exactly.
        """
        token_ids = self.tokenize(text)
        if self.detokenize(token_ids) != text:
            raise StegoTokenizationError(
                f"Text {text!r} does not survive a tokenize/detokenize round trip"
            )
        return token_ids

    def token_id(self, text: str) -> int:
        """Return the id of the single token spelling *text*.

        Raises:
            StegoTokenizationError: If *text* is not exactly one token.
        """
        token_ids = self.tokenize(text)
        if len(token_ids) != 1:
            raise StegoTokenizationError(
                f"{text!r} must be a single token, got {len(token_ids)} tokens"
            )
        return token_ids[0]

    def ids_containing(self, fragment: str) -> frozenset[int]:
        """Return the ids of every token whose text contains *fragment*."""
        cached = self._containing.get(fragment)
        if cached is None:
            cached = frozenset(
                i for i in range(self.vocab_size) if fragment in self.detokenize([i])
            )
            self._containing[fragment] = cached
        return cached

    def ids_starting_with(self, prefix: str) -> frozenset[int]:
        """Return the ids of every token whose text starts with *prefix*."""
        cached = self._starting.get(prefix)
        if cached is None:
            cached = frozenset(
                i for i in range(self.vocab_size) if self.detokenize([i]).startswith(prefix)
            )
            self._starting[prefix] = cached
        return cached


class HFLanguageModel(LanguageModel):
    """:class:`LanguageModel` backed by a HuggingFace causal LM."""

    def __init__(
        self,
        model: PreTrainedModel,
        tokenizer: PreTrainedTokenizerBase,
        device: torch.device,
    ) -> None:
        super().__init__()
        self._model = model
        self._tokenizer = tokenizer
        self._device = device

    @property
    def device(self) -> torch.device:
        return self._device

    @property
    def vocab_size(self) -> int:
        return len(self._tokenizer)

    @property
    def special_token_ids(self) -> frozenset[int]:
        return frozenset(self._tokenizer.all_special_ids)

    def tokenize(self, text: str) -> list[int]:
        return self._tokenizer.encode(text, add_special_tokens=False)

    def detokenize(self, token_ids: Sequence[int]) -> str:
        # Cleanup would drop spaces before punctuation and break round trips.
        return self._tokenizer.decode(
            list(token_ids),
            skip_special_tokens=False,
            clean_up_tokenization_spaces=False,
        )

    def logits(self, context_ids: Sequence[int]) -> torch.Tensor:
        if not context_ids:
            raise StegoModelError("Cannot query the model with an empty context")
        input_ids = torch.tensor([list(context_ids)], device=self._device)
        try:
            with torch.no_grad():
                outputs = self._model(input_ids)
        except RuntimeError as exc:
            raise StegoModelError(f"Model inference failed: {exc}") from exc
        # Cut to the tokenizer's vocabulary; some checkpoints pad the head.
        return outputs.logits[0, -1, : self.vocab_size].to(dtype=torch.float64).cpu()


# ---------------------------------------------------------------------------
# HuggingFace token helpers
# ---------------------------------------------------------------------------


def _get_hf_token() -> str | None:
    """Load ``.env`` and return the ``HF_TOKEN`` environment variable, if set."""
    load_dotenv()
    return os.environ.get("HF_TOKEN") or None


def _resolve_device(device: str) -> torch.device:
    """Resolve 'auto' device string to an actual torch device.

    Args:
        device: One of 'auto', 'cpu', 'cuda', 'cuda:0', etc.

    Returns:
        A ``torch.device`` instance.
    """
    if device == "auto":
        if torch.cuda.is_available():
            return torch.device("cuda")
        return torch.device("cpu")
    return torch.device(device)


def _setup_determinism() -> None:
    """Configure PyTorch for maximum determinism."""
    torch.manual_seed(0)
    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(0)
    torch.backends.cudnn.deterministic = True  # type: ignore[attr-defined]
    torch.backends.cudnn.benchmark = False  # type: ignore[attr-defined]


def load_model(
    model_name: str,
    device: str = "auto",
    token: str | None = None,
) -> tuple[PreTrainedModel, PreTrainedTokenizerBase, torch.device]:
    """Load a causal language model and tokenizer.

    Tries the requested model first; if it fails (e.g. gated access), falls
    back to ``FALLBACK_MODEL``.  Both parties of a conversation must end up on
    the same model, so the fallback is logged as a warning.

    Args:
        model_name: HuggingFace model identifier.
        device: Device string ('auto', 'cpu', 'cuda', etc.).
        token: HuggingFace API token for gated models.  When ``None``,
            falls back to the ``HF_TOKEN`` environment variable / ``.env``.

    Returns:
        A tuple of (model, tokenizer, resolved_device).

    Raises:
        StegoModelError: If both primary and fallback models fail to load.
    """
    _setup_determinism()
    resolved_device = _resolve_device(device)
    hf_token = token or _get_hf_token()

    for name in (model_name, FALLBACK_MODEL):
        try:
            logger.info("Loading model %s on %s", name, resolved_device)
            tokenizer = AutoTokenizer.from_pretrained(name, token=hf_token)
            model = AutoModelForCausalLM.from_pretrained(
                name,
                dtype=torch.float32,  # float32 for determinism
                token=hf_token,
            )
            model = model.to(resolved_device)
            model.eval()
            return model, tokenizer, resolved_device
        except Exception as exc:
            if name == model_name and name != FALLBACK_MODEL:
                logger.warning(
                    "Failed to load %s (%s), falling back to %s",
                    name,
                    exc,
                    FALLBACK_MODEL,
                )
                continue
            raise StegoModelError(f"Failed to load model '{name}': {exc}") from exc

    # Should not reach here, but satisfy type checker
    raise StegoModelError("No model could be loaded")


def load_language_model(
    model_name: str = PRIMARY_MODEL,
    device: str = "auto",
    token: str | None = None,
) -> HFLanguageModel:
    """Load a model and wrap it in an :class:`HFLanguageModel`."""
    model, tokenizer, resolved_device = load_model(model_name, device, token=token)
    return HFLanguageModel(model, tokenizer, resolved_device)
