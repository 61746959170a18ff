"""Realtime presence, pairwise rooms, chat relay and global broadcast."""

from .managers import (  # noqa: F401
    get_background_tasks,
    get_broadcaster,
    get_connection_manager,
    get_message_relay,
    get_presence_registry,
    get_room_router,
    shutdown_realtime,
    startup_realtime,
    use_chat_store,
)
from .broadcaster import Broadcaster  # noqa: F401
from .connections import ConnectionManager  # noqa: F401
from .presence import PresenceRegistry  # noqa: F401
from .relay import MessageRelay, RelayResult  # noqa: F401
from .rooms import RoomError, RoomRouter, canonical_room_id  # noqa: F401
from .store import OutboundMessage  # noqa: F401

__all__ = [
    "startup_realtime",
    "shutdown_realtime",
    "use_chat_store",
    "get_background_tasks",
    "get_broadcaster",
    "get_connection_manager",
    "get_message_relay",
    "get_presence_registry",
    "get_room_router",
    "Broadcaster",
    "ConnectionManager",
    "MessageRelay",
    "OutboundMessage",
    "PresenceRegistry",
    "RelayResult",
    "RoomError",
    "RoomRouter",
    "canonical_room_id",
]
