"""Utility functions: exceptions and bit manipulation helpers."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Library-specific exceptions
# ---------------------------------------------------------------------------


class StegoError(Exception):
    """Base exception for StegoChat."""


class StegoModelError(StegoError):
    """Raised when model loading or inference fails."""


class StegoTokenizationError(StegoError):
    """Raised when text cannot be represented exactly in the model vocabulary."""


class StegoEncodeError(StegoError):
    """Raised when encoding fails."""


class StegoDecodeError(StegoError):
    """Raised when decoding fails."""


class DecodingFault(StegoDecodeError):
    """A byte stream does not terminate in a valid symbol sequence."""


class TokenError(StegoDecodeError):
    """An observed token is not in the step's restricted candidate set.

    Attributes:
        step: Position of the offending token in the decoded text.
        token_id: The offending token id.
    """

    def __init__(self, message: str, step: int, token_id: int) -> None:
        super().__init__(message)
        self.step = step
        self.token_id = token_id


class StegoCryptoError(StegoError):
    """Raised on invalid cipher input (bad key length, negative nonce, …)."""


class StegoRoundtripError(StegoError):
    """Raised when the encrypt self-check does not reproduce the original."""

    def __init__(self, message: str, original: str, recovered: str | None) -> None:
        super().__init__(message)
        self.original = original
        self.recovered = recovered


# ---------------------------------------------------------------------------
# Bit-stream helpers
# ---------------------------------------------------------------------------


def bytes_to_bits(data: bytes) -> list[int]:
    """Convert bytes to a list of bits (MSB first per byte).

    Args:
        data: Input bytes.

    Returns:
        List of 0/1 integers.
    """
    bits: list[int] = []
    for byte in data:
        for i in range(7, -1, -1):
            bits.append((byte >> i) & 1)
    return bits


def bits_to_bytes(bits: list[int]) -> bytes:
    """Convert a list of bits back to bytes (MSB first per byte).

    Pads with zeros on the right if len(bits) is not a multiple of 8.

    Args:
        bits: List of 0/1 integers.

    Returns:
        Reconstructed bytes.
    """
    padded = bits + [0] * ((8 - len(bits) % 8) % 8)
    result = bytearray()
    for i in range(0, len(padded), 8):
        byte = 0
        for j in range(8):
            byte = (byte << 1) | padded[i + j]
        result.append(byte)
    return bytes(result)
