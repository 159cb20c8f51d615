"""Encryption layer: password-derived keys and a nonce-indexed AES-256-CTR stream.

There is no authentication tag.  Decrypting with the wrong key silently
returns random-looking bytes; the entropy decoder downstream rejects them.
"""

from __future__ import annotations

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .utils import StegoCryptoError

DEFAULT_SALT = "salt"
_KEY_LEN = 32  # AES-256
_KDF_ITERATIONS = 600_000
_NONCE_LEN = 8  # high half of the CTR block; the low half is the block counter
_FINGERPRINT_DOMAIN = b"stegochat/fingerprint/v1\x00"


class Cypher:
    """Deterministic key derivation, key fingerprints and the stream transform.

    Args:
        iterations: PBKDF2 iteration count.  Every party must use the same
            value or derived keys differ.
    """

    def __init__(self, iterations: int = _KDF_ITERATIONS) -> None:
        self._iterations = iterations

    def get_deterministic_key(self, password: str, salt: str = DEFAULT_SALT) -> bytes:
        """Derive a 256-bit key from *password* and *salt* using PBKDF2-HMAC-SHA256."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=_KEY_LEN,
            salt=salt.encode("utf-8"),
            iterations=self._iterations,
        )
        return kdf.derive(password.encode("utf-8"))

    def get_fingerprint(self, key: bytes) -> str:
        """Return a one-way hex tag of *key*, safe to store next to messages."""
        digest = hashes.Hash(hashes.SHA256())
        digest.update(_FINGERPRINT_DOMAIN)
        digest.update(key)
        return digest.finalize().hex()

    def encrypt(self, key: bytes, data: bytes, nonce_count: int) -> bytes:
        """Encrypt *data* under *key* with the nonce for position *nonce_count*."""
        return self._transform(key, data, nonce_count)

    def decrypt(self, key: bytes, data: bytes, nonce_count: int) -> bytes:
        """Invert :meth:`encrypt`."""
        return self._transform(key, data, nonce_count)

    @staticmethod
    def _transform(key: bytes, data: bytes, nonce_count: int) -> bytes:
        if len(key) != _KEY_LEN:
            raise StegoCryptoError(f"Key must be {_KEY_LEN} bytes, got {len(key)}")
        if not 0 <= nonce_count < 1 << (8 * _NONCE_LEN):
            raise StegoCryptoError(f"Nonce count out of range: {nonce_count}")
        block = nonce_count.to_bytes(_NONCE_LEN, "big") + bytes(16 - _NONCE_LEN)
        transform = Cipher(algorithms.AES(key), modes.CTR(block)).encryptor()
        return transform.update(data) + transform.finalize()
