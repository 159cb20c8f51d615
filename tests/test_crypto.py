"""Tests for key derivation, fingerprints and the stream cipher."""

from __future__ import annotations

import pytest

from stegochat import Cypher, StegoCryptoError


class TestKeyDerivation:
    def test_deterministic(self, cypher: Cypher) -> None:
        assert cypher.get_deterministic_key("pw") == cypher.get_deterministic_key("pw")

    def test_key_length(self, cypher: Cypher) -> None:
        assert len(cypher.get_deterministic_key("pw")) == 32

    def test_password_and_salt_matter(self, cypher: Cypher) -> None:
        key = cypher.get_deterministic_key("pw")
        assert cypher.get_deterministic_key("pw2") != key
        assert cypher.get_deterministic_key("pw", salt="pepper") != key

    def test_default_salt_literal(self, cypher: Cypher) -> None:
        assert cypher.get_deterministic_key("pw") == cypher.get_deterministic_key(
            "pw", salt="salt"
        )

    def test_iteration_count_matters(self) -> None:
        assert Cypher().get_deterministic_key("pw") != Cypher(
            iterations=1_000
        ).get_deterministic_key("pw")


class TestFingerprint:
    def test_deterministic(self, cypher: Cypher) -> None:
        key = cypher.get_deterministic_key("pw")
        assert cypher.get_fingerprint(key) == cypher.get_fingerprint(key)

    def test_distinct_keys(self, cypher: Cypher) -> None:
        fingerprints = {
            cypher.get_fingerprint(cypher.get_deterministic_key(pw))
            for pw in ("a", "b", "c", "pw")
        }
        assert len(fingerprints) == 4

    def test_does_not_reveal_key(self, cypher: Cypher) -> None:
        key = cypher.get_deterministic_key("pw")
        assert key.hex() not in cypher.get_fingerprint(key)


class TestStreamCipher:
    @pytest.fixture(scope="class")
    def key(self, cypher: Cypher) -> bytes:
        return cypher.get_deterministic_key("secret")

    @pytest.mark.parametrize("nonce_count", [0, 1, 7, 2**40])
    def test_inverse(self, cypher: Cypher, key: bytes, nonce_count: int) -> None:
        data = b"hello, world! \x00\xff" * 5
        ciphertext = cypher.encrypt(key, data, nonce_count)
        assert len(ciphertext) == len(data)
        assert cypher.decrypt(key, ciphertext, nonce_count) == data

    def test_empty_payload(self, cypher: Cypher, key: bytes) -> None:
        assert cypher.encrypt(key, b"", 0) == b""

    def test_nonce_sensitivity(self, cypher: Cypher, key: bytes) -> None:
        data = b"identical content"
        assert cypher.encrypt(key, data, 0) != cypher.encrypt(key, data, 1)

    def test_wrong_key_gives_garbage(self, cypher: Cypher, key: bytes) -> None:
        data = b"identical content"
        other = cypher.get_deterministic_key("not-secret")
        assert cypher.decrypt(other, cypher.encrypt(key, data, 3), 3) != data

    def test_bad_key_length(self, cypher: Cypher) -> None:
        with pytest.raises(StegoCryptoError, match="Key must be"):
            cypher.encrypt(b"short", b"data", 0)

    def test_negative_nonce(self, cypher: Cypher, key: bytes) -> None:
        with pytest.raises(StegoCryptoError, match="Nonce count"):
            cypher.encrypt(key, b"data", -1)
