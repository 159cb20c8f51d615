"""Tests for the entropy coder."""

from __future__ import annotations

import pytest

from stegochat import (
    DecodingFault,
    StegoEncodeError,
    StegoTokenizationError,
    Text2BytesCodec,
)

CONTEXT = "- A: hey\n- B: hello\n- A:"


@pytest.fixture(scope="module")
def t2b(toy_model) -> Text2BytesCodec:
    return Text2BytesCodec(toy_model)


class TestCompressionRoundTrip:
    """compress → decompress reproduces the text exactly."""

    @pytest.mark.parametrize(
        "text",
        [" hi", " ", "", " The quick brown fox jumps over the lazy dog.", " ~!@#$%^&*()"],
    )
    def test_round_trip(self, t2b: Text2BytesCodec, text: str) -> None:
        data = t2b.compress(text, CONTEXT)
        assert isinstance(data, bytes)
        assert t2b.decompress(data, CONTEXT) == text

    def test_determinism(self, t2b: Text2BytesCodec) -> None:
        assert t2b.compress(" same", CONTEXT) == t2b.compress(" same", CONTEXT)

    def test_context_changes_output(self, t2b: Text2BytesCodec) -> None:
        text = " a message long enough to differ"
        assert t2b.compress(text, CONTEXT) != t2b.compress(text, "- B:")


class TestCompressErrors:
    def test_delimiter_rejected(self, t2b: Text2BytesCodec) -> None:
        with pytest.raises(StegoEncodeError, match="end-of-message"):
            t2b.compress(" two\nlines", CONTEXT)

    def test_out_of_vocabulary_rejected(self, t2b: Text2BytesCodec) -> None:
        with pytest.raises(StegoTokenizationError):
            t2b.compress(" café", CONTEXT)


class TestDecodingFaults:
    """Anything other than exact compressor output is rejected."""

    def test_truncated_stream(self, t2b: Text2BytesCodec) -> None:
        data = t2b.compress(" a fairly long line of chat text", CONTEXT)
        with pytest.raises(DecodingFault):
            t2b.decompress(data[: len(data) // 2], CONTEXT)

    def test_trailing_bytes(self, t2b: Text2BytesCodec) -> None:
        data = t2b.compress(" hi there", CONTEXT)
        with pytest.raises(DecodingFault):
            t2b.decompress(data + b"\x00", CONTEXT)

    def test_empty_stream(self, t2b: Text2BytesCodec) -> None:
        with pytest.raises(DecodingFault):
            t2b.decompress(b"", CONTEXT)

    def test_random_bytes(self, t2b: Text2BytesCodec) -> None:
        data = bytes(range(7, 250, 9))
        with pytest.raises(DecodingFault):
            t2b.decompress(data, CONTEXT)

    def test_wrong_context(self, t2b: Text2BytesCodec) -> None:
        data = t2b.compress(" this was compressed for another context", CONTEXT)
        with pytest.raises(DecodingFault):
            t2b.decompress(data, "- B:")

    def test_token_limit(self, toy_model) -> None:
        short_limit = Text2BytesCodec(toy_model, max_tokens=3)
        data = Text2BytesCodec(toy_model).compress(" far more than three tokens", CONTEXT)
        with pytest.raises(DecodingFault, match="maximum token limit"):
            short_limit.decompress(data, CONTEXT)
