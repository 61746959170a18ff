"""Realtime chat relay: emit to the room first, persist afterwards."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from app.core.validation import normalize_message_text
from app.monitoring.metrics import realtime_events_total

from .presence import PresenceRegistry
from .rooms import RoomRouter
from .store import ChatStore, OutboundMessage
from .tasks import DetachedTasks


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RelayResult:
    room: str
    message: OutboundMessage
    delivered: int
    persist_task: asyncio.Task[Any]


class MessageRelay:
    """Deliver chat messages to pairwise rooms and record them durably.

    Emission and persistence are separate steps. :meth:`emit` is awaited and
    completes before storage is touched; :meth:`schedule_persist` hands the
    write to a detached task whose failure is logged and counted but never
    reaches the sender or retracts the emitted event.
    """

    def __init__(
        self,
        rooms: RoomRouter,
        presence: PresenceRegistry,
        store: ChatStore,
        tasks: DetachedTasks,
    ) -> None:
        self._rooms = rooms
        self._presence = presence
        self._store = store
        self._tasks = tasks

    @property
    def store(self) -> ChatStore:
        return self._store

    @store.setter
    def store(self, store: ChatStore) -> None:
        self._store = store

    async def relay(self, sender_id: object, receiver_id: object, text: Any) -> RelayResult:
        body = normalize_message_text(text)
        room_id = self._rooms.room_for(sender_id, receiver_id)
        message = OutboundMessage(
            sender_id=int(sender_id),
            receiver_id=int(receiver_id),
            text=body,
            read=self._presence.is_online(receiver_id),
        )
        delivered = await self.emit(room_id, message)
        task = self.schedule_persist(message)
        return RelayResult(room=room_id, message=message, delivered=delivered, persist_task=task)

    async def emit(self, room_id: str, message: OutboundMessage) -> int:
        realtime_events_total.labels("chat", "local", "message").inc()
        return await self._rooms.emit(
            room_id, {"type": "message", "room": room_id, "message": message.to_payload()}
        )

    def schedule_persist(self, message: OutboundMessage) -> asyncio.Task[Any]:
        return self._tasks.spawn(self._store.save_message(message), kind="message")
