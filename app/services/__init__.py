"""Application service helpers."""

from .chat_store import SqlAlchemyChatStore

__all__ = ["SqlAlchemyChatStore"]
