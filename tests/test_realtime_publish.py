from __future__ import annotations

import logging
from typing import Any

import pytest
from fastapi.websockets import WebSocketState

from app.monitoring.metrics import realtime_events_total, realtime_publish_errors_total
from innerlight.realtime.broadcaster import Broadcaster
from innerlight.realtime.connections import ConnectionManager
from innerlight.realtime.rooms import RoomRouter
from innerlight.realtime.transport import BrokerConfig, RedisTransport, Subscription


class DummyWebSocket:
    def __init__(self, state: WebSocketState = WebSocketState.CONNECTED) -> None:
        self.application_state = state
        self.sent: list[dict[str, Any]] = []

    async def send_json(self, payload: dict[str, Any]) -> None:
        self.sent.append(payload)


class FailingRedis:
    async def publish(self, channel: str, payload: str) -> None:  # pragma: no cover - used in tests
        raise ConnectionError("boom")


class RecordingRedis:
    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel: str, payload: str) -> None:
        self.published.append((channel, payload))


@pytest.mark.anyio("asyncio")
async def test_broadcaster_reaches_every_connected_client():
    connections = ConnectionManager()
    sockets = [DummyWebSocket() for _ in range(3)]
    closed = DummyWebSocket(WebSocketState.DISCONNECTED)
    for socket in [*sockets, closed]:
        connections.register(socket)
    broadcaster = Broadcaster(
        connections, RedisTransport(BrokerConfig(redis_url=None)), node_id="node"
    )

    delivered = await broadcaster.broadcast_notification({"kind": "like", "post": 7})

    assert delivered == 3
    for socket in sockets:
        assert socket.sent == [{"type": "notification", "payload": {"kind": "like", "post": 7}}]
    assert closed.sent == []


@pytest.mark.anyio("asyncio")
async def test_friend_request_event_type():
    connections = ConnectionManager()
    socket = DummyWebSocket()
    connections.register(socket)
    broadcaster = Broadcaster(
        connections, RedisTransport(BrokerConfig(redis_url=None)), node_id="node"
    )

    await broadcaster.broadcast_friend_request({"from": 1, "to": 2})

    assert socket.sent == [{"type": "friend_request", "payload": {"from": 1, "to": 2}}]


@pytest.mark.anyio("asyncio")
async def test_disabled_transport_stays_local_without_warnings(caplog):
    connections = ConnectionManager()
    socket = DummyWebSocket()
    connections.register(socket)
    broadcaster = Broadcaster(
        connections, RedisTransport(BrokerConfig(redis_url=None)), node_id="node"
    )

    with caplog.at_level(logging.WARNING):
        await broadcaster.start()
        await broadcaster.publish({"type": "notification", "payload": None})

    assert socket.sent, "Event should be delivered locally"
    assert not broadcaster.subscribed
    assert not [record for record in caplog.records if record.levelno >= logging.WARNING]
    assert realtime_publish_errors_total.value("broadcast", "redis", "unavailable") == 0


@pytest.mark.anyio("asyncio")
async def test_broadcast_publish_connection_error_logs_warning_once(caplog):
    transport = RedisTransport(BrokerConfig(redis_url="redis://example"))
    transport._redis = FailingRedis()  # type: ignore[assignment]
    connections = ConnectionManager()
    socket = DummyWebSocket()
    connections.register(socket)
    broadcaster = Broadcaster(connections, transport, node_id="node")

    with caplog.at_level(logging.WARNING):
        await broadcaster.broadcast_notification({"n": 1})
        await broadcaster.broadcast_notification({"n": 2})

    assert len(socket.sent) == 2, "Events should be delivered locally despite publish failure"
    warnings = [
        record
        for record in caplog.records
        if record.levelno == logging.WARNING and "local-only mode" in record.getMessage()
    ]
    assert len(warnings) == 1
    assert realtime_publish_errors_total.value("broadcast", "redis", "unavailable") == 2.0
    # publish failures schedule a reconnect; do not leave it running
    await transport.stop()


@pytest.mark.anyio("asyncio")
async def test_room_events_are_published_with_origin():
    transport = RedisTransport(BrokerConfig(redis_url="redis://example", prefix="test.rt"))
    redis = RecordingRedis()
    transport._redis = redis  # type: ignore[assignment]
    router = RoomRouter(ConnectionManager(), transport, node_id="node-a")

    await router.emit("1-2", {"type": "message", "room": "1-2"})

    assert len(redis.published) == 1
    channel, raw = redis.published[0]
    assert channel == "test.rt.rooms"
    assert '"origin": "node-a"' in raw
    assert realtime_events_total.value("rooms", "out", "message") == 1


class CapturingTransport:
    enabled = True

    def __init__(self) -> None:
        self.handlers: dict[str, Any] = {}

    async def subscribe(self, topic: str, handler: Any) -> Subscription:
        self.handlers[topic] = handler

        async def cleanup() -> None:
            self.handlers.pop(topic, None)

        return Subscription(topic, cleanup)


@pytest.mark.anyio("asyncio")
async def test_remote_events_from_own_node_are_ignored():
    connections = ConnectionManager()
    socket = DummyWebSocket()
    connections.register(socket)
    transport = CapturingTransport()
    broadcaster = Broadcaster(connections, transport, node_id="node-a")  # type: ignore[arg-type]
    await broadcaster.start()
    handler = transport.handlers["broadcast"]

    remote_event = {"type": "notification", "payload": "remote"}
    await handler({"event": {"type": "notification", "payload": "echo"}, "origin": "node-a"})
    await handler({"event": remote_event, "origin": "node-b", "action": "notification"})

    assert socket.sent == [remote_event]
    assert realtime_events_total.value("broadcast", "in", "notification") == 1

    await broadcaster.stop()
    assert transport.handlers == {}
