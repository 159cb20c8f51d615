"""Message pipeline: compress, encrypt, disguise (and the reverse).

Encrypt:  plaintext --Text2BytesCodec--> bytes --Cypher--> bytes --Bytes2TextCodec--> cover text
Decrypt:  cover text --Bytes2TextCodec--> bytes --Cypher--> bytes --Text2BytesCodec--> plaintext

The nonce of a message is its index in the conversation and its context is
the resolved plaintext of every earlier message, so a conversation must be
processed in order.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Sequence
from concurrent.futures import Future
from dataclasses import dataclass

from .bytes2text import Bytes2TextCodec, GenerationConfig
from .context import build_context
from .crypto import DEFAULT_SALT, Cypher
from .messages import Message
from .model import PRIMARY_MODEL, LanguageModel, load_language_model
from .text2bytes import Text2BytesCodec
from .utils import DecodingFault, StegoRoundtripError, TokenError

logger = logging.getLogger(__name__)

# Framing byte prepended before compression, stripped after expansion
FRAME_PREFIX = " "


class DecodeStatus(enum.Enum):
    OK = "ok"
    TOKEN_ERROR = "token_error"
    DECODING_FAULT = "decoding_fault"


@dataclass(frozen=True)
class DecryptOutcome:
    """Result of one decrypt attempt.

    ``plaintext`` is set only when ``status`` is :attr:`DecodeStatus.OK`.
    """

    status: DecodeStatus
    plaintext: str | None = None
    detail: str = ""


@dataclass(frozen=True)
class EncryptResult:
    """An encrypted message together with its verified self-decryption."""

    encrypted: Message
    decrypted: Message


class Pipeline:
    """Per-message encrypt/decrypt over a shared language model.

    Args:
        language_model: Model adapter shared by both codecs.
        config: Generation settings for the cover text.
        cypher: Key derivation and stream cipher.
    """

    def __init__(
        self,
        language_model: LanguageModel,
        config: GenerationConfig | None = None,
        cypher: Cypher | None = None,
    ) -> None:
        self.language_model = language_model
        self.bytes2text = Bytes2TextCodec(language_model, config)
        self.text2bytes = Text2BytesCodec(
            language_model, eom_token=self.bytes2text.config.stop_token
        )
        self.cypher = cypher or Cypher()

    # ------------------------------------------------------------------
    # Single messages
    # ------------------------------------------------------------------

    def encrypt(self, key: bytes, history: Sequence[Message], message: Message) -> Message:
        """Return a copy of *message* whose content is the disguised ciphertext."""
        nonce_count = len(history)
        context = build_context(history, message.speaker)
        logger.debug("Encrypting message %d with context %r", nonce_count, context)

        compressed = self.text2bytes.compress(FRAME_PREFIX + message.content, context)
        ciphertext = self.cypher.encrypt(key, compressed, nonce_count)
        cover = self.bytes2text.encode(ciphertext, context)
        cover = cover.removesuffix(self.bytes2text.config.stop_token)

        if not cover.startswith(FRAME_PREFIX):
            logger.warning("Cover text does not start with a space: %r", cover)
        return message.with_content(cover[len(FRAME_PREFIX) :])

    def attempt_decrypt(
        self, key: bytes, history: Sequence[Message], message: Message
    ) -> DecryptOutcome:
        """Try to recover the plaintext hidden in *message*.

        Token errors and decoding faults become a failed outcome; any other
        error propagates.
        """
        nonce_count = len(history)
        context = build_context(history, message.speaker)
        logger.debug("Decrypting message %d with context %r", nonce_count, context)
        try:
            ciphertext = self.bytes2text.decode(FRAME_PREFIX + message.content, context)
            compressed = self.cypher.decrypt(key, ciphertext, nonce_count)
            text = self.text2bytes.decompress(compressed, context)
        except TokenError as exc:
            return DecryptOutcome(DecodeStatus.TOKEN_ERROR, detail=str(exc))
        except DecodingFault as exc:
            return DecryptOutcome(DecodeStatus.DECODING_FAULT, detail=str(exc))

        if not text.startswith(FRAME_PREFIX):
            return DecryptOutcome(
                DecodeStatus.DECODING_FAULT, detail="Missing leading frame byte"
            )
        return DecryptOutcome(DecodeStatus.OK, plaintext=text[len(FRAME_PREFIX) :])

    def decrypt(self, key: bytes, history: Sequence[Message], message: Message) -> Message:
        """Return a copy of *message* resolved under *key*.

        On success ``decrypted_content`` holds the plaintext; otherwise it is
        ``None``.  Either way ``fingerprint`` records the key that was tried.
        """
        fingerprint = self.cypher.get_fingerprint(key)
        outcome = self.attempt_decrypt(key, history, message)
        match outcome.status:
            case DecodeStatus.OK:
                assert outcome.plaintext is not None
                return message.resolved(outcome.plaintext, fingerprint)
            case DecodeStatus.TOKEN_ERROR | DecodeStatus.DECODING_FAULT:
                logger.info(
                    "Message %d not decryptable (%s): %s",
                    len(history),
                    outcome.status.value,
                    outcome.detail,
                )
                return message.undecryptable(fingerprint)

    # ------------------------------------------------------------------
    # Host protocol
    # ------------------------------------------------------------------

    def encrypt_message(
        self,
        password: str,
        history: Sequence[Message],
        message: Message,
        salt: str = DEFAULT_SALT,
    ) -> EncryptResult:
        """Encrypt *message* after *history* and verify it decrypts back.

        *history* must already be resolved under the same password.

        Raises:
            StegoRoundtripError: If the self-check does not reproduce the content.
        """
        key = self.cypher.get_deterministic_key(password, salt)
        encrypted = self.encrypt(key, history, message)
        decrypted = self.decrypt(key, history, encrypted)
        if decrypted.decrypted_content != message.content:
            raise StegoRoundtripError(
                f"original: |{message.content}| decrypted: |{decrypted.decrypted_content}|",
                original=message.content,
                recovered=decrypted.decrypted_content,
            )
        return EncryptResult(encrypted=encrypted, decrypted=decrypted)

    def decrypt_messages(
        self,
        password: str,
        messages: Sequence[Message],
        salt: str = DEFAULT_SALT,
    ) -> list[Message]:
        """Resolve every message of a conversation under *password*.

        Messages already resolved under the same key are returned unchanged.
        """
        key = self.cypher.get_deterministic_key(password, salt)
        fingerprint = self.cypher.get_fingerprint(key)

        resolved: list[Message] = []
        for message in messages:
            if message.fingerprint == fingerprint:
                resolved.append(message)
            else:
                resolved.append(self.decrypt(key, resolved, message))
        return resolved


# ---------------------------------------------------------------------------
# Process-wide pipeline
# ---------------------------------------------------------------------------

_lock = threading.Lock()
_pipeline_future: Future[Pipeline] | None = None


def get_pipeline(
    model_name: str = PRIMARY_MODEL,
    device: str = "auto",
    token: str | None = None,
    config: GenerationConfig | None = None,
) -> Pipeline:
    """Return the process-wide pipeline, loading the model on first use.

    Concurrent first callers share one load: the first caller builds the
    pipeline and the others wait on the same future.  A failed load is
    re-raised to every waiter and cleared, so the next call retries.
    Arguments are only used by the call that performs the load.

    Raises:
        StegoModelError: If the model cannot be loaded.
    """
    global _pipeline_future
    with _lock:
        future = _pipeline_future
        owner = future is None
        if future is None:
            future = _pipeline_future = Future()

    if owner:
        try:
            language_model = load_language_model(model_name, device, token=token)
            pipeline = Pipeline(language_model, config)
        except Exception as exc:
            with _lock:
                _pipeline_future = None
            future.set_exception(exc)
            raise
        future.set_result(pipeline)

    return future.result()


def close_pipeline() -> None:
    """Drop the process-wide pipeline so the next :func:`get_pipeline` reloads."""
    global _pipeline_future
    with _lock:
        _pipeline_future = None
