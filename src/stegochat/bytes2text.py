"""Generative coder: expand arbitrary bytes into natural-looking text.

The encoder is conceptually an arithmetic *decoder*: it reads bits from the
hidden bytes and uses them to pick, at each step, the token whose interval in
the restricted (temperature / top-k / top-p) distribution contains them.  The
decoder replays the same distributions over the observed tokens and reads the
bits back off, like an arithmetic *encoder*.

No length is transmitted.  The payload is followed by a ``1`` terminator bit,
and the value register continues with ``1`` then zeros.  That places the
value in the middle of the terminator's dyadic interval, so the terminator is
committed after a bounded number of tokens.  The committed bits are then
``payload 1`` or ``payload 1 1 0...``; stripping trailing zeros and the one
or two final ``1`` bits that leave a whole number of bytes gives the payload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import torch

from .buckets import Buckets, Narrower, Widener
from .context import EOM_TOKEN
from .model import LanguageModel
from .utils import (
    DecodingFault,
    StegoEncodeError,
    StegoTokenizationError,
    TokenError,
    bits_to_bytes,
    bytes_to_bits,
)

logger = logging.getLogger(__name__)

# Maximum tokens to generate as a safety limit
MAX_TOKENS = 2048

# Top-k tokens to consider from the distribution
TOP_K = 200


@dataclass(frozen=True)
class GenerationConfig:
    """Sampling restriction applied before every generative step.

    Attributes:
        temperature: Divides the logits before truncation; lower values
            concentrate mass on likely tokens.
        top_p: Nucleus bound on the candidate set's cumulative probability.
        top_k: Upper bound on the number of candidates.
        stop_token: Literal end-of-message delimiter appended after the
            generated text.  Tokens containing it are never generated.
        leading_text: The first generated token must start with this text
            (empty for no restriction).
    """

    temperature: float = 0.9
    top_p: float = 0.9
    top_k: int = TOP_K
    stop_token: str = EOM_TOKEN
    leading_text: str = " "

    def __post_init__(self) -> None:
        if not self.temperature > 0:
            raise ValueError(f"temperature must be positive, got {self.temperature}")
        if not 0 < self.top_p <= 1:
            raise ValueError(f"top_p must be in (0, 1], got {self.top_p}")
        if self.top_k < 1:
            raise ValueError(f"top_k must be at least 1, got {self.top_k}")
        if not self.stop_token:
            raise ValueError("stop_token must be a non-empty string")
        if self.stop_token in self.leading_text:
            raise ValueError("leading_text must not contain the stop token")


class Bytes2TextCodec:
    """Hide bytes in generated text conditioned on a context string.

    Args:
        language_model: The shared model adapter.
        config: Sampling restriction; encoder and decoder must agree.
        max_tokens: Generation bound.
    """

    def __init__(
        self,
        language_model: LanguageModel,
        config: GenerationConfig | None = None,
        max_tokens: int = MAX_TOKENS,
    ) -> None:
        self._lm = language_model
        self._config = config or GenerationConfig()
        self._max_tokens = max_tokens
        banned = (
            language_model.ids_containing(self._config.stop_token)
            | language_model.special_token_ids
        )
        self._banned = sorted(banned)
        self._leading: list[int] | None = None
        if self._config.leading_text:
            self._leading = sorted(
                language_model.ids_starting_with(self._config.leading_text) - banned
            )
            if not self._leading:
                raise StegoTokenizationError(
                    f"No token starts with {self._config.leading_text!r}"
                )

    @property
    def config(self) -> GenerationConfig:
        return self._config

    def _candidates(self, context_ids: list[int], first: bool = False) -> Buckets:
        """Return the restricted, renormalized distribution as buckets."""
        logits = self._lm.logits(context_ids).to(dtype=torch.float64)
        if first and self._leading is not None:
            allowed = torch.full_like(logits, float("-inf"))
            allowed[self._leading] = 0.0
            logits = logits + allowed
        elif self._banned:
            logits = logits.clone()
            logits[self._banned] = float("-inf")
        probs = torch.softmax(logits / self._config.temperature, dim=-1)

        # Stable sort keeps equal probabilities in ascending id order
        sorted_probs, sorted_ids = torch.sort(probs, descending=True, stable=True)
        k = min(self._config.top_k, int((sorted_probs > 0).sum().item()))
        sorted_probs = sorted_probs[: max(k, 1)]
        sorted_ids = sorted_ids[: max(k, 1)]

        mass_before = torch.cumsum(sorted_probs, dim=0) - sorted_probs
        keep = mass_before < self._config.top_p
        keep[0] = True
        return Buckets.from_probabilities(sorted_ids[keep], sorted_probs[keep])

    def encode(self, data: bytes, context: str) -> str:
        """Generate text that hides *data*, terminated by the stop token.

        Raises:
            StegoEncodeError: If generation exceeds the token limit.
        """
        bits = bytes_to_bits(data) + [1]
        input_ids = self._lm.tokenize(context)
        # The extra 1 centres the value in the terminator's interval.
        widener = Widener(bits + [1])
        generated: list[int] = []

        # Generate until every payload bit (and the terminator) is committed.
        while widener.bits_emitted < len(bits):
            if len(generated) >= self._max_tokens:
                raise StegoEncodeError(
                    f"Exceeded maximum token limit ({self._max_tokens}) before "
                    f"encoding all data. Emitted {widener.bits_emitted}/{len(bits)} bits."
                )
            buckets = self._candidates(input_ids, first=not generated)
            token_id = buckets.token_at(widener.widen(buckets))
            generated.append(token_id)
            input_ids.append(token_id)

        text = self._lm.detokenize(generated)
        logger.debug(
            "Hid %d bytes in %d tokens (%.2f bits/token)",
            len(data),
            len(generated),
            len(bits) / len(generated),
        )
        return text + self._config.stop_token

    def decode(self, text: str, context: str) -> bytes:
        """Recover the bytes hidden in *text* by :meth:`encode`.

        Only the text before the first stop token is read; a missing stop
        token means the whole text is read.

        Raises:
            TokenError: If a token was not a candidate at its step.
            DecodingFault: If the recovered bits are not a framed payload.
        """
        body = text.split(self._config.stop_token, 1)[0]
        token_ids = self._lm.tokenize(body)
        input_ids = self._lm.tokenize(context)
        narrower = Narrower()

        for step, token_id in enumerate(token_ids):
            buckets = self._candidates(input_ids, first=step == 0)
            index = buckets.index_of(token_id)
            if index is None:
                raise TokenError(
                    f"Token ID {token_id} ({self._lm.detokenize([token_id])!r}) at "
                    f"step {step} is not among the {len(buckets)} candidates. "
                    "The text was not generated under this context and configuration.",
                    step=step,
                    token_id=token_id,
                )
            narrower.narrow(buckets, index)
            input_ids.append(token_id)

        return self._unframe(narrower.bits)

    @staticmethod
    def _unframe(bits: list[int]) -> bytes:
        """Strip the terminator framing from committed bits."""
        end = len(bits)
        while end and bits[end - 1] == 0:
            end -= 1
        if end % 8 == 1:
            payload_end = end - 1
        elif end % 8 == 2 and bits[end - 2] == 1:
            payload_end = end - 2
        else:
            raise DecodingFault(
                f"Decoded {len(bits)} bits do not end with a payload terminator"
            )
        return bits_to_bytes(bits[:payload_end])
