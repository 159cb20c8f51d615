"""Chat message values and conversation (de)serialisation."""

from __future__ import annotations

import dataclasses
import enum
import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any


class Speaker(enum.Enum):
    """One of the two parties of a conversation."""

    A = "A"
    B = "B"

    @property
    def tag(self) -> str:
        return f"- {self.value}:"


@dataclass(frozen=True)
class Message:
    """An immutable chat message.

    Attributes:
        speaker: Who wrote the message.
        content: The visible text (cover text for hidden messages).
        decrypted_content: The recovered plaintext, or ``None`` when the
            message was not (or could not be) decrypted.
        fingerprint: Fingerprint of the key the message was last resolved
            under, or ``None`` if it was never tried.
    """

    speaker: Speaker
    content: str
    decrypted_content: str | None = None
    fingerprint: str | None = None

    @property
    def resolved_text(self) -> str:
        """Plaintext view of the message used to build model context."""
        if self.decrypted_content is not None:
            return self.decrypted_content
        return self.content

    def with_content(self, content: str) -> Message:
        """Copy with new visible content and no decryption state."""
        return dataclasses.replace(
            self, content=content, decrypted_content=None, fingerprint=None
        )

    def resolved(self, plaintext: str, fingerprint: str) -> Message:
        """Copy marked as decrypted to *plaintext* under *fingerprint*."""
        return dataclasses.replace(
            self, decrypted_content=plaintext, fingerprint=fingerprint
        )

    def undecryptable(self, fingerprint: str) -> Message:
        """Copy marked as not decryptable under *fingerprint*."""
        return dataclasses.replace(self, decrypted_content=None, fingerprint=fingerprint)

    def to_dict(self) -> dict[str, Any]:
        return {
            "speaker": self.speaker.value,
            "content": self.content,
            "decryptedContent": self.decrypted_content,
            "fingerprint": self.fingerprint,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        try:
            speaker = Speaker(data["speaker"])
            content = data["content"]
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid message record {data!r}: {exc}") from exc
        return cls(
            speaker=speaker,
            content=content,
            decrypted_content=data.get("decryptedContent"),
            fingerprint=data.get("fingerprint"),
        )


def dump_conversation(messages: Sequence[Message]) -> str:
    """Serialise a conversation to a JSON array."""
    return json.dumps([m.to_dict() for m in messages], indent=2, ensure_ascii=False)


def load_conversation(text: str) -> list[Message]:
    """Parse a JSON array produced by :func:`dump_conversation`."""
    records = json.loads(text)
    if not isinstance(records, list):
        raise ValueError("A conversation must be a JSON array of messages")
    return [Message.from_dict(record) for record in records]
