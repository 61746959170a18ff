"""Text rules shared by every path that stores or relays chat messages."""

from __future__ import annotations

from app.config import get_settings


class MessageValidationError(ValueError):
    """Raised when chat message text violates the storage invariants."""


def normalize_message_text(text: object, *, max_length: int | None = None) -> str:
    """Return trimmed message text or raise :class:`MessageValidationError`.

    The text must be a string that is non-empty after trimming and no longer
    than ``max_length`` characters (the configured chat limit by default).
    """

    if max_length is None:
        max_length = get_settings().chat_message_max_length
    if not isinstance(text, str):
        raise MessageValidationError("Message text must be a string")
    trimmed = text.strip()
    if not trimmed:
        raise MessageValidationError("Message text is required")
    if len(trimmed) > max_length:
        raise MessageValidationError(f"Message cannot exceed {max_length} characters")
    return trimmed
