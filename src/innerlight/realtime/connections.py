"""Local websocket bookkeeping: live connections and room subscriptions."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from typing import Any, Dict, Set

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from app.monitoring.metrics import realtime_connections


logger = logging.getLogger(__name__)


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Safely send JSON data through websocket, handling disconnections gracefully.

    Returns True if message was sent successfully, False otherwise.
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


class ConnectionManager:
    """Track live websockets by connection id and their room subscriptions.

    Room membership is volatile and never persisted. Each room has its own
    emission lock so events submitted to a room reach every subscriber in
    submission order even when several handlers emit concurrently, while a
    slow socket in one room never holds up another room.
    """

    def __init__(self) -> None:
        self._connections: Dict[str, WebSocket] = {}
        self._rooms: Dict[str, Set[str]] = defaultdict(set)
        self._memberships: Dict[str, Set[str]] = defaultdict(set)
        self._room_locks: Dict[str, asyncio.Lock] = {}

    def register(self, websocket: WebSocket) -> str:
        connection_id = uuid.uuid4().hex
        self._connections[connection_id] = websocket
        realtime_connections.labels("chat").inc()
        return connection_id

    def unregister(self, connection_id: str) -> None:
        if self._connections.pop(connection_id, None) is None:
            return
        realtime_connections.labels("chat").dec()
        for room_id in self._memberships.pop(connection_id, set()):
            members = self._rooms.get(room_id)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                self._drop_room(room_id)

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def subscribe(self, room_id: str, connection_id: str) -> bool:
        """Add the connection to the room; returns False when already a member."""

        if connection_id not in self._connections:
            raise KeyError(connection_id)
        members = self._rooms[room_id]
        if connection_id in members:
            return False
        members.add(connection_id)
        self._memberships[connection_id].add(room_id)
        return True

    def unsubscribe(self, room_id: str, connection_id: str) -> bool:
        members = self._rooms.get(room_id)
        if not members or connection_id not in members:
            return False
        members.discard(connection_id)
        if not members:
            self._drop_room(room_id)
        rooms = self._memberships.get(connection_id)
        if rooms is not None:
            rooms.discard(room_id)
            if not rooms:
                self._memberships.pop(connection_id, None)
        return True

    def room_members(self, room_id: str) -> set[str]:
        return set(self._rooms.get(room_id, set()))

    async def emit_to_room(self, room_id: str, payload: dict[str, Any]) -> int:
        """Deliver ``payload`` to every subscriber of ``room_id``; returns the delivery count."""

        if not self._rooms.get(room_id):
            return 0
        lock = self._room_locks.setdefault(room_id, asyncio.Lock())
        try:
            async with lock:
                targets = [
                    self._connections[connection_id]
                    for connection_id in sorted(self._rooms.get(room_id, set()))
                    if connection_id in self._connections
                ]
                return await self._deliver(targets, payload)
        finally:
            if room_id not in self._rooms and not lock.locked():
                self._room_locks.pop(room_id, None)

    async def emit_all(self, payload: dict[str, Any]) -> int:
        return await self._deliver(list(self._connections.values()), payload)

    def _drop_room(self, room_id: str) -> None:
        self._rooms.pop(room_id, None)
        lock = self._room_locks.get(room_id)
        # an emission in flight removes the lock itself when it finishes
        if lock is not None and not lock.locked():
            self._room_locks.pop(room_id, None)

    @staticmethod
    async def _deliver(targets: list[WebSocket], payload: dict[str, Any]) -> int:
        delivered = 0
        for websocket in targets:
            if await safe_send_json(websocket, payload):
                delivered += 1
        return delivered
