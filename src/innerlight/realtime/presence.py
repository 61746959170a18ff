"""Process-local registry of which users hold a live realtime connection."""

from __future__ import annotations

import logging
from typing import Dict

from app.monitoring.metrics import realtime_events_total, realtime_online_users

from .broadcaster import Broadcaster
from .store import ChatStore, utcnow
from .tasks import DetachedTasks


logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Owns the ``user_id -> connection_id`` map.

    At most one connection is recorded per user; a later ``mark_online`` for
    the same user replaces the earlier connection. Every change is announced
    to all local connections as an ``online_users`` event carrying the full
    set. Mutations run between await points on the event loop and need no lock.
    """

    def __init__(
        self,
        broadcaster: Broadcaster,
        store: ChatStore,
        tasks: DetachedTasks,
    ) -> None:
        self._broadcaster = broadcaster
        self._store = store
        self._tasks = tasks
        self._sessions: Dict[str, str] = {}

    @property
    def store(self) -> ChatStore:
        return self._store

    @store.setter
    def store(self, store: ChatStore) -> None:
        self._store = store

    def online_users(self) -> list[str]:
        return sorted(self._sessions)

    def is_online(self, user_id: object) -> bool:
        return str(user_id) in self._sessions

    def connection_for(self, user_id: object) -> str | None:
        return self._sessions.get(str(user_id))

    async def mark_online(self, user_id: object, connection_id: str) -> None:
        self._sessions[str(user_id)] = connection_id
        realtime_online_users.set(len(self._sessions))
        realtime_events_total.labels("presence", "local", "online").inc()
        await self._announce()

    async def mark_offline(self, user_id: object) -> bool:
        """Remove ``user_id``; returns False (and does nothing) if it was not online."""

        key = str(user_id)
        if self._sessions.pop(key, None) is None:
            return False
        realtime_online_users.set(len(self._sessions))
        realtime_events_total.labels("presence", "local", "offline").inc()
        self._tasks.spawn(self._store.touch_last_seen(key, utcnow()), kind="last_seen")
        await self._announce()
        return True

    async def handle_disconnect(self, connection_id: str) -> str | None:
        """Take the owner of ``connection_id`` offline if it still owns a session."""

        for user_id, owned in list(self._sessions.items()):
            if owned == connection_id:
                await self.mark_offline(user_id)
                return user_id
        return None

    def clear(self) -> None:
        self._sessions.clear()
        realtime_online_users.set(0)

    async def _announce(self) -> None:
        await self._broadcaster.publish(
            {"type": "online_users", "users": self.online_users()},
            cluster=False,
        )
