"""SQLAlchemy-backed storage used by the realtime relay and presence registry."""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from datetime import datetime
from typing import TYPE_CHECKING, Callable

import anyio
from sqlalchemy.orm import Session

from app import database
from app.models import Message, User

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from innerlight.realtime.store import OutboundMessage


logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


class SqlAlchemyChatStore:
    """Run each write in a worker thread with its own short-lived session."""

    def __init__(self, session_factory: SessionFactory | None = None) -> None:
        self._session_factory = session_factory

    def _session(self) -> AbstractContextManager[Session]:
        if self._session_factory is not None:
            return self._session_factory()
        return database.get_db_session()

    async def save_message(self, message: "OutboundMessage") -> int:
        return await anyio.to_thread.run_sync(self._save_message_sync, message)

    async def touch_last_seen(self, user_id: str, seen_at: datetime) -> None:
        await anyio.to_thread.run_sync(self._touch_last_seen_sync, user_id, seen_at)

    def _save_message_sync(self, message: "OutboundMessage") -> int:
        with self._session() as db:
            record = Message(
                sender_id=message.sender_id,
                receiver_id=message.receiver_id,
                text=message.text,
                read=message.read,
                timestamp=message.timestamp,
            )
            db.add(record)
            try:
                db.commit()
            except Exception:
                db.rollback()
                raise
            db.refresh(record)
            logger.debug("Stored message %s in room of %s", record.id, message.sender_id)
            return record.id

    def _touch_last_seen_sync(self, user_id: str, seen_at: datetime) -> None:
        with self._session() as db:
            user = db.get(User, int(user_id))
            if user is None:
                logger.info("Skipping last_seen update for unknown user %s", user_id)
                return
            user.last_seen = seen_at
            try:
                db.commit()
            except Exception:
                db.rollback()
                raise
