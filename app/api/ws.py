"""WebSocket gateway for presence, pairwise chat rooms and global notices."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, WebSocket, status
from fastapi.exceptions import HTTPException
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.api.deps import get_user_from_token
from app.config import get_settings
from app.core.validation import MessageValidationError
from app.database import get_db_session
from app.monitoring.metrics import realtime_events_total

from innerlight.realtime.connections import safe_send_json
from innerlight.realtime.managers import (
    get_broadcaster,
    get_connection_manager,
    get_message_relay,
    get_presence_registry,
    get_room_router,
)
from innerlight.realtime.rooms import RoomError

router = APIRouter(prefix="/ws", tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

connections = get_connection_manager()
presence = get_presence_registry()
rooms = get_room_router()
relay = get_message_relay()
broadcaster = get_broadcaster()

T = TypeVar("T")


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"type": "ping"}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            should_ping = interval <= 0 or (
                now - last_activity >= interval
                and (last_ping_sent is None or now - last_ping_sent >= interval)
            )
            if should_ping:
                if not await safe_send_json(websocket, ping_payload):
                    break
                last_ping_sent = now
            continue
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


class ClientEventError(Exception):
    """A client frame that cannot be honoured; reported back as an ``error`` frame."""


@dataclass(slots=True)
class ChatSession:
    websocket: WebSocket
    user_id: int
    connection_id: str


async def _resolve_user_id(websocket: WebSocket) -> int | None:
    token = websocket.query_params.get("token")
    if not token:
        auth_header = websocket.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing token")
        return None

    try:
        with get_db_session() as db:
            return get_user_from_token(token, db).id
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return None


async def _receive_text_frame(websocket: WebSocket) -> str | None:
    """Return the next text frame, or None for a frame that carries no text."""

    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(
            message.get("code", status.WS_1000_NORMAL_CLOSURE), message.get("reason")
        )
    return message.get("text")


async def _send_error(websocket: WebSocket, detail: str) -> None:
    await safe_send_json(websocket, {"type": "error", "detail": detail})


def _coerce_user_id(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ClientEventError(f"Invalid {field}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ClientEventError(f"Invalid {field}") from None


def _check_claim(session: ChatSession, payload: dict[str, Any], field: str) -> None:
    """Reject frames that claim to act for a user other than the authenticated one."""

    claimed = payload.get(field)
    if claimed is None:
        return
    if str(claimed) != str(session.user_id):
        raise ClientEventError("Identity does not match the authenticated user")


async def _on_go_online(session: ChatSession, payload: dict[str, Any]) -> None:
    _check_claim(session, payload, "user_id")
    await presence.mark_online(session.user_id, session.connection_id)


async def _on_go_offline(session: ChatSession, payload: dict[str, Any]) -> None:
    _check_claim(session, payload, "user_id")
    await presence.mark_offline(session.user_id)


async def _on_join_room(session: ChatSession, payload: dict[str, Any]) -> None:
    _check_claim(session, payload, "user_id")
    peer_id = _coerce_user_id(payload.get("peer_id"), "peer_id")
    room_id = rooms.join(session.user_id, peer_id, session.connection_id)
    await safe_send_json(session.websocket, {"type": "room_joined", "room": room_id})


async def _on_leave_room(session: ChatSession, payload: dict[str, Any]) -> None:
    _check_claim(session, payload, "user_id")
    peer_id = _coerce_user_id(payload.get("peer_id"), "peer_id")
    room_id = rooms.leave(session.user_id, peer_id, session.connection_id)
    await safe_send_json(session.websocket, {"type": "room_left", "room": room_id})


async def _on_send_message(session: ChatSession, payload: dict[str, Any]) -> None:
    _check_claim(session, payload, "sender_id")
    receiver_id = _coerce_user_id(payload.get("receiver_id"), "receiver_id")
    await relay.relay(session.user_id, receiver_id, payload.get("text"))


async def _on_send_notification(session: ChatSession, payload: dict[str, Any]) -> None:
    await broadcaster.broadcast_notification(payload.get("payload"))


async def _on_send_friend_request(session: ChatSession, payload: dict[str, Any]) -> None:
    await broadcaster.broadcast_friend_request(payload.get("payload"))


async def _on_ping(session: ChatSession, payload: dict[str, Any]) -> None:
    await safe_send_json(session.websocket, {"type": "pong"})


async def _on_pong(session: ChatSession, payload: dict[str, Any]) -> None:
    """Keepalive reply; receiving it already refreshed the idle timer."""


EVENT_HANDLERS: dict[str, Callable[[ChatSession, dict[str, Any]], Awaitable[None]]] = {
    "go_online": _on_go_online,
    "go_offline": _on_go_offline,
    "join_room": _on_join_room,
    "leave_room": _on_leave_room,
    "send_message": _on_send_message,
    "send_notification": _on_send_notification,
    "send_friend_request": _on_send_friend_request,
    "ping": _on_ping,
    "pong": _on_pong,
}


async def _dispatch(session: ChatSession, raw_message: str | None) -> None:
    if raw_message is None:
        await _send_error(session.websocket, "Invalid payload")
        return
    try:
        payload = json.loads(raw_message)
    except json.JSONDecodeError:
        await _send_error(session.websocket, "Invalid payload")
        return
    if not isinstance(payload, dict):
        await _send_error(session.websocket, "Invalid payload")
        return

    event_type = payload.get("type")
    handler = EVENT_HANDLERS.get(event_type) if isinstance(event_type, str) else None
    if handler is None:
        await _send_error(session.websocket, "Unsupported event type")
        return

    realtime_events_total.labels("chat", "in", event_type).inc()
    try:
        await handler(session, payload)
    except (ClientEventError, MessageValidationError, RoomError) as exc:
        await _send_error(session.websocket, str(exc))
    except Exception:
        logger.exception(
            "Failed to handle %s event from user %s", event_type, session.user_id
        )
        await _send_error(session.websocket, "Internal error")


@router.websocket("/chat")
async def websocket_chat(websocket: WebSocket) -> None:
    """Realtime chat session for the authenticated user."""

    user_id = await _resolve_user_id(websocket)
    if user_id is None:
        return

    await websocket.accept()
    session = ChatSession(
        websocket=websocket,
        user_id=user_id,
        connection_id=connections.register(websocket),
    )
    try:
        async for raw_message in iter_keepalive_messages(
            websocket,
            lambda: _receive_text_frame(websocket),
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
        ):
            await _dispatch(session, raw_message)
    finally:
        # Drop the socket before announcing, so the offline broadcast skips it.
        connections.unregister(session.connection_id)
        await presence.handle_disconnect(session.connection_id)
