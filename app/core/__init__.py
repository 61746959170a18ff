"""Core utilities for the InnerLight backend."""

from .validation import MessageValidationError, normalize_message_text

__all__ = ["MessageValidationError", "normalize_message_text"]
