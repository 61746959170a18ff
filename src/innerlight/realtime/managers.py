"""Module level wiring of the realtime components and their lifecycle."""

from __future__ import annotations

import asyncio
import logging
import uuid

from app.config import get_settings
from app.services.chat_store import SqlAlchemyChatStore

from .broadcaster import Broadcaster
from .connections import ConnectionManager
from .presence import PresenceRegistry
from .relay import MessageRelay
from .rooms import RoomRouter
from .store import ChatStore
from .tasks import DetachedTasks
from .transport import BrokerConfig, RedisTransport, TransportUnavailableError


logger = logging.getLogger(__name__)


settings = get_settings()

_node_id = settings.realtime_node_id or uuid.uuid4().hex

transport = RedisTransport(
    BrokerConfig(
        redis_url=settings.realtime_redis_url,
        prefix=settings.realtime_namespace,
        node_id=_node_id,
    )
)

chat_store: ChatStore = SqlAlchemyChatStore()
background_tasks = DetachedTasks()
connection_manager = ConnectionManager()
broadcaster = Broadcaster(connection_manager, transport, node_id=_node_id)
room_router = RoomRouter(connection_manager, transport, node_id=_node_id)
presence_registry = PresenceRegistry(broadcaster, chat_store, background_tasks)
message_relay = MessageRelay(room_router, presence_registry, chat_store, background_tasks)


async def startup_realtime() -> None:
    if not transport.enabled:
        logger.info("No realtime broker configured; running in single-node mode")
        return
    try:
        await transport.start()
    except (TransportUnavailableError, OSError):
        logger.warning(
            "Realtime backend unavailable during startup; continuing without cross-node sync",
            exc_info=logger.isEnabledFor(logging.DEBUG),
        )
        return

    await asyncio.gather(broadcaster.start(), room_router.start())


async def shutdown_realtime() -> None:
    await asyncio.gather(broadcaster.stop(), room_router.stop())
    await transport.stop()
    await background_tasks.drain()


def use_chat_store(store: ChatStore) -> None:
    """Swap the storage used by presence and relay (tests, alternative backends)."""

    global chat_store
    chat_store = store
    presence_registry.store = store
    message_relay.store = store


# Convenience accessors exposed to the FastAPI layer ----------------------


def get_connection_manager() -> ConnectionManager:
    return connection_manager


def get_presence_registry() -> PresenceRegistry:
    return presence_registry


def get_room_router() -> RoomRouter:
    return room_router


def get_message_relay() -> MessageRelay:
    return message_relay


def get_broadcaster() -> Broadcaster:
    return broadcaster


def get_background_tasks() -> DetachedTasks:
    return background_tasks


__all__ = [
    "startup_realtime",
    "shutdown_realtime",
    "use_chat_store",
    "get_connection_manager",
    "get_presence_registry",
    "get_room_router",
    "get_message_relay",
    "get_broadcaster",
    "get_background_tasks",
]
