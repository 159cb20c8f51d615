"""Integer probability buckets and the arithmetic coders built on them.

A :class:`Buckets` table turns a probability distribution into integer
cumulative frequencies.  Two coders walk the same 32-bit interval over those
tables in opposite directions:

* :class:`Narrower` observes tokens and emits the bits that identify them
  (an arithmetic *encoder*).  It compresses text, and it extracts the hidden
  bits back out of cover text.
* :class:`Widener` reads bits and picks the token whose interval contains
  them (an arithmetic *decoder*).  It decompresses bytes, and it generates
  cover text from hidden bits.

Both share :meth:`_IntervalCoder._select` so the intervals are bit-exact in
either direction.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import torch

from .utils import StegoError

# Arithmetic coding precision (number of bits for the interval)
PRECISION = 32
WHOLE = 1 << PRECISION  # 2^32
HALF = WHOLE >> 1  # 2^31
QUARTER = WHOLE >> 2  # 2^30

# Frequency scale for bucket tables.  Must stay below QUARTER so every bucket
# keeps a non-empty interval after renormalization.
FREQ_BITS = 24
TOTAL_FREQ = 1 << FREQ_BITS


@dataclass(frozen=True, eq=False)
class Buckets:
    """Cumulative integer frequencies for an ordered set of tokens.

    Attributes:
        token_ids: int64 tensor of token ids, ascending.
        cum: int64 tensor of length ``len(token_ids) + 1``; bucket ``i`` owns
            ``[cum[i], cum[i + 1])``.
    """

    token_ids: torch.Tensor
    cum: torch.Tensor

    @classmethod
    def from_probabilities(cls, token_ids: torch.Tensor, probs: torch.Tensor) -> Buckets:
        """Build buckets from *probs* (any non-negative weights).

        Every token gets a frequency of at least 1, so a token with zero
        probability is still codable.  Token order is ascending id.

        Args:
            token_ids: 1-D tensor of distinct token ids.
            probs: 1-D tensor of weights aligned with *token_ids*.
        """
        n = token_ids.numel()
        if n == 0:
            raise StegoError("Cannot build buckets over an empty distribution")
        if n >= TOTAL_FREQ:
            raise StegoError(f"Distribution too large for bucket precision ({n} tokens)")

        order = torch.argsort(token_ids)
        token_ids = token_ids[order].to(dtype=torch.int64)
        weights = probs[order].to(dtype=torch.float64).clamp(min=0.0)
        mass = weights.sum()
        if not torch.isfinite(mass) or mass.item() <= 0.0:
            weights = torch.ones_like(weights)
            mass = weights.sum()

        scale = TOTAL_FREQ - n
        freqs = 1 + torch.floor(weights / mass * scale).to(dtype=torch.int64)
        cum = torch.zeros(n + 1, dtype=torch.int64)
        cum[1:] = torch.cumsum(freqs, dim=0)
        return cls(token_ids=token_ids, cum=cum)

    @classmethod
    def from_distribution(cls, probs: torch.Tensor) -> Buckets:
        """Build buckets over a full vocabulary distribution (ids ``0..V-1``)."""
        token_ids = torch.arange(probs.numel(), dtype=torch.int64)
        return cls.from_probabilities(token_ids, probs)

    def __len__(self) -> int:
        return self.token_ids.numel()

    @property
    def total(self) -> int:
        return int(self.cum[-1].item())

    def bounds(self, index: int) -> tuple[int, int]:
        """Return the ``[low, high)`` frequency bounds of bucket *index*."""
        return int(self.cum[index].item()), int(self.cum[index + 1].item())

    def token_at(self, index: int) -> int:
        return int(self.token_ids[index].item())

    def index_of(self, token_id: int) -> int | None:
        """Return the bucket index of *token_id*, or ``None`` if absent."""
        needle = torch.tensor([token_id], dtype=torch.int64)
        index = int(torch.searchsorted(self.token_ids, needle).item())
        if index < len(self) and self.token_at(index) == token_id:
            return index
        return None

    def locate(self, target: int) -> int:
        """Return the bucket whose frequency range contains *target*."""
        needle = torch.tensor([target], dtype=torch.int64)
        index = int(torch.searchsorted(self.cum, needle, right=True).item()) - 1
        return min(max(index, 0), len(self) - 1)


class _IntervalCoder:
    """Interval state shared by both coding directions.

    ``bits_emitted`` counts the bits an arithmetic encoder has committed so
    far; ``pending`` counts straddle bits not yet resolved.
    """

    def __init__(self) -> None:
        self.low = 0
        self.high = WHOLE
        self.pending = 0
        self.bits_emitted = 0

    def _select(self, buckets: Buckets, index: int) -> None:
        """Narrow the interval to bucket *index* and renormalize."""
        range_size = self.high - self.low
        if range_size <= 0:
            raise StegoError(
                "Arithmetic coding interval collapsed (range_size <= 0). "
                "This indicates a numerical precision issue."
            )
        sym_low, sym_high = buckets.bounds(index)
        total = buckets.total
        self.high = self.low + (range_size * sym_high) // total
        self.low = self.low + (range_size * sym_low) // total
        self._renormalize()

    def _renormalize(self) -> None:
        while True:
            if self.high <= HALF:
                # Both in lower half: emit 0 + pending 1s
                self._emit(0)
            elif self.low >= HALF:
                # Both in upper half: emit 1 + pending 0s
                self._emit(1)
                self._shift_down(HALF)
            elif self.low >= QUARTER and self.high <= 3 * QUARTER:
                # Straddle the middle
                self.pending += 1
                self._shift_down(QUARTER)
            else:
                break
            self.low <<= 1
            self.high <<= 1
            self._shift_in()

    def _emit(self, bit: int) -> None:
        self.bits_emitted += 1 + self.pending
        self._write(bit, self.pending)
        self.pending = 0

    def _shift_down(self, offset: int) -> None:
        self.low -= offset
        self.high -= offset

    def _shift_in(self) -> None:
        pass

    def _write(self, bit: int, pending: int) -> None:
        pass

    def termination_bits(self) -> list[int]:
        """Bits that pin the current interval for any continuation."""
        bit = 0 if self.low < QUARTER else 1
        return [bit] + [1 - bit] * (self.pending + 1)


class Narrower(_IntervalCoder):
    """Arithmetic encoder: observed tokens in, bits out."""

    def __init__(self) -> None:
        super().__init__()
        self.bits: list[int] = []

    def narrow(self, buckets: Buckets, index: int) -> None:
        """Record the choice of bucket *index*, emitting any settled bits."""
        self._select(buckets, index)

    def _write(self, bit: int, pending: int) -> None:
        self.bits.append(bit)
        self.bits.extend([1 - bit] * pending)

    def finish(self) -> list[int]:
        """Flush the interval and return every emitted bit."""
        self.bits.extend(self.termination_bits())
        self.pending = 0
        return self.bits


class Widener(_IntervalCoder):
    """Arithmetic decoder: bits in, bucket choices out.

    Reads past the end of *bits* as zeros.  ``bits_read`` counts how many
    bits have entered the value register, padding included.
    """

    def __init__(self, bits: Sequence[int]) -> None:
        super().__init__()
        self._bits = bits
        self.bits_read = 0
        self.value = 0
        for _ in range(PRECISION):
            self.value = (self.value << 1) | self._next_bit()

    def _next_bit(self) -> int:
        bit = self._bits[self.bits_read] if self.bits_read < len(self._bits) else 0
        self.bits_read += 1
        return bit

    def widen(self, buckets: Buckets) -> int:
        """Return the bucket index whose interval contains the current value."""
        range_size = self.high - self.low
        # Largest cum[j] with low + range_size * cum[j] // total <= value
        target = ((self.value - self.low + 1) * buckets.total - 1) // range_size
        index = buckets.locate(target)
        self._select(buckets, index)
        return index

    def _shift_down(self, offset: int) -> None:
        super()._shift_down(offset)
        self.value -= offset

    def _shift_in(self) -> None:
        self.value = (self.value << 1) | self._next_bit()
