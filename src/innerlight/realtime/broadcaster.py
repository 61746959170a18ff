"""Global fan-out of ephemeral notices to every connected client."""

from __future__ import annotations

from typing import Any

from .connections import ConnectionManager
from .fanout import ClusterFanout
from .transport import BROADCAST_TOPIC, RedisTransport


class Broadcaster(ClusterFanout):
    """Single capability for "send to everyone".

    Events reach every local connection and, unless ``cluster`` is false,
    every other node. Nothing is persisted and nothing is acknowledged;
    clients filter what is relevant to them.
    """

    topic = BROADCAST_TOPIC

    def __init__(
        self,
        connections: ConnectionManager,
        transport: RedisTransport,
        *,
        node_id: str,
    ) -> None:
        super().__init__(transport, node_id=node_id)
        self._connections = connections

    async def publish(
        self,
        event: dict[str, Any],
        *,
        cluster: bool = True,
    ) -> int:
        delivered = await self._connections.emit_all(event)
        if cluster:
            await self._publish(str(event.get("type", "event")), {"event": event})
        return delivered

    async def broadcast_notification(self, payload: Any) -> int:
        return await self.publish({"type": "notification", "payload": payload})

    async def broadcast_friend_request(self, payload: Any) -> int:
        return await self.publish({"type": "friend_request", "payload": payload})

    async def _handle_remote(self, message: dict[str, Any]) -> None:
        event = message.get("event")
        if isinstance(event, dict):
            await self._connections.emit_all(event)
