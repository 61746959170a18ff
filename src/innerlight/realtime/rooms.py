"""Pairwise chat rooms: deterministic naming and subscription management."""

from __future__ import annotations

import logging
from typing import Any

from .connections import ConnectionManager
from .fanout import ClusterFanout
from .transport import ROOM_TOPIC, RedisTransport


logger = logging.getLogger(__name__)

ROOM_DELIMITER = "-"


class RoomError(ValueError):
    """Raised for a room request that cannot name two distinct participants."""


def canonical_room_id(a: object, b: object) -> str:
    """Return the room shared by ``a`` and ``b``.

    Both identities are compared as strings and joined in lexicographic
    order, so ``canonical_room_id(a, b) == canonical_room_id(b, a)`` always
    holds and either participant can derive the name without coordination.
    """

    return ROOM_DELIMITER.join(sorted([str(a), str(b)]))


class RoomRouter(ClusterFanout):
    """Subscribe connections to pairwise rooms and deliver room events."""

    topic = ROOM_TOPIC

    def __init__(
        self,
        connections: ConnectionManager,
        transport: RedisTransport,
        *,
        node_id: str,
    ) -> None:
        super().__init__(transport, node_id=node_id)
        self._connections = connections

    @staticmethod
    def room_for(user_id: object, peer_id: object) -> str:
        if str(user_id) == str(peer_id):
            raise RoomError("A room needs two distinct participants")
        return canonical_room_id(user_id, peer_id)

    def join(self, user_id: object, peer_id: object, connection_id: str) -> str:
        room_id = self.room_for(user_id, peer_id)
        if self._connections.subscribe(room_id, connection_id):
            logger.debug("Connection %s joined room %s", connection_id, room_id)
        return room_id

    def leave(self, user_id: object, peer_id: object, connection_id: str) -> str:
        room_id = self.room_for(user_id, peer_id)
        if self._connections.unsubscribe(room_id, connection_id):
            logger.debug("Connection %s left room %s", connection_id, room_id)
        return room_id

    async def emit(self, room_id: str, event: dict[str, Any]) -> int:
        """Deliver ``event`` to local subscribers of ``room_id``, then to other nodes."""

        delivered = await self._connections.emit_to_room(room_id, event)
        await self._publish(str(event.get("type", "event")), {"room": room_id, "event": event})
        return delivered

    async def _handle_remote(self, message: dict[str, Any]) -> None:
        room_id = message.get("room")
        event = message.get("event")
        if not isinstance(room_id, str) or not isinstance(event, dict):
            return
        await self._connections.emit_to_room(room_id, event)
