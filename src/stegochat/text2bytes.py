"""Entropy coder: compress text into bytes under the model's full distribution.

Compression narrows the arithmetic interval once per token (plus a final
end-of-message token) and flushes to whole bytes.  Decompression widens
until the end-of-message token appears, then checks that the remaining bits
are exactly what the compressor's flush would have produced.  Random bytes,
such as a wrong-key decryption, almost never pass that check.
"""

from __future__ import annotations

import logging

from .buckets import Buckets, Narrower, Widener
from .context import EOM_TOKEN
from .model import LanguageModel
from .utils import (
    DecodingFault,
    StegoEncodeError,
    bits_to_bytes,
    bytes_to_bits,
)

logger = logging.getLogger(__name__)

# Maximum tokens to decode as a safety limit
MAX_TOKENS = 1024


class Text2BytesCodec:
    """Compress text to bytes (and back) conditioned on a context string.

    Args:
        language_model: The shared model adapter.
        eom_token: Literal end-of-message marker; must be a single token.
        max_tokens: Decode bound guarding against pathological input.
    """

    def __init__(
        self,
        language_model: LanguageModel,
        eom_token: str = EOM_TOKEN,
        max_tokens: int = MAX_TOKENS,
    ) -> None:
        self._lm = language_model
        self._eom_id = language_model.token_id(eom_token)
        self._max_tokens = max_tokens

    def _buckets(self, context_ids: list[int]) -> Buckets:
        return Buckets.from_distribution(self._lm.distribution(context_ids))

    def compress(self, text: str, context: str) -> bytes:
        """Compress *text* given the conversation *context*.

        Raises:
            StegoTokenizationError: If *text* is not representable exactly.
            StegoEncodeError: If *text* contains the end-of-message token.
        """
        token_ids = self._lm.encode_text(text)
        if self._eom_id in token_ids:
            raise StegoEncodeError("Text contains the end-of-message delimiter")

        input_ids = self._lm.tokenize(context)
        narrower = Narrower()
        for token_id in token_ids + [self._eom_id]:
            buckets = self._buckets(input_ids)
            index = buckets.index_of(token_id)
            if index is None:
                raise StegoEncodeError(f"Token id {token_id} is outside the vocabulary")
            narrower.narrow(buckets, index)
            input_ids.append(token_id)

        data = bits_to_bytes(narrower.finish())
        logger.debug(
            "Compressed %d tokens (%d chars) into %d bytes",
            len(token_ids),
            len(text),
            len(data),
        )
        return data

    def decompress(self, data: bytes, context: str) -> str:
        """Recover the text compressed by :meth:`compress`.

        Raises:
            DecodingFault: If *data* is not a complete compressed message.
        """
        bits = bytes_to_bits(data)
        input_ids = self._lm.tokenize(context)
        widener = Widener(bits)
        token_ids: list[int] = []

        for _ in range(self._max_tokens + 1):
            buckets = self._buckets(input_ids)
            token_id = buckets.token_at(widener.widen(buckets))
            if widener.bits_emitted > len(bits):
                raise DecodingFault(
                    f"Byte stream exhausted after {len(token_ids)} tokens "
                    "without reaching the end-of-message marker"
                )
            if token_id == self._eom_id:
                self._check_tail(bits, widener)
                return self._lm.detokenize(token_ids)
            token_ids.append(token_id)
            input_ids.append(token_id)

        raise DecodingFault(
            f"Exceeded maximum token limit ({self._max_tokens}) while decompressing"
        )

    @staticmethod
    def _check_tail(bits: list[int], widener: Widener) -> None:
        """Require the bits after the committed prefix to be the canonical flush."""
        tail = widener.termination_bits()
        end = widener.bits_emitted + len(tail)
        expected_length = -(-end // 8) * 8
        if len(bits) != expected_length:
            raise DecodingFault(
                f"End-of-message marker at bit {end} but stream has {len(bits)} bits"
            )
        padding = [0] * (expected_length - end)
        if bits[widener.bits_emitted :] != tail + padding:
            raise DecodingFault("Stream does not end with a valid flush sequence")
