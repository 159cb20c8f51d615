"""Render conversation history into the text the model conditions on."""

from __future__ import annotations

from collections.abc import Sequence

from .messages import Message, Speaker

# End-of-message delimiter, shared with both codecs
EOM_TOKEN = "\n"


def build_context(history: Sequence[Message], speaker: Speaker) -> str:
    """Return the model context for a new message by *speaker*.

    Each prior message contributes ``"<tag> <text>\\n"`` using its resolved
    plaintext, and the context ends with the new speaker's bare tag.

    Example::

        >>> build_context([Message(Speaker.A, "hi")], Speaker.B)
        '- A: hi\\n- B:'
    """
    lines = "".join(
        f"{message.speaker.tag} {message.resolved_text}{EOM_TOKEN}" for message in history
    )
    return lines + speaker.tag
