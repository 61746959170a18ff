"""Shared cross-node plumbing for managers that mirror local events to the broker."""

from __future__ import annotations

import logging
from typing import Any

from app.monitoring.metrics import (
    realtime_events_total,
    realtime_publish_errors_total,
    realtime_subscriptions,
)

from .transport import RedisTransport, Subscription, TransportUnavailableError


logger = logging.getLogger(__name__)


class ClusterFanout:
    """Base for managers that publish to, and consume from, one broker topic.

    Subclasses implement :meth:`_handle_remote`. A disabled transport keeps the
    manager local-only without logging; an unreachable broker is reported with
    one warning until a publish succeeds again.
    """

    topic: str = ""
    backend = "redis"

    def __init__(self, transport: RedisTransport, *, node_id: str) -> None:
        self._transport = transport
        self._node_id = node_id
        self._subscription: Subscription | None = None
        self._publish_warning_logged = False
        self._subscribe_warning_logged = False

    @property
    def node_id(self) -> str:
        return self._node_id

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    async def start(self) -> None:
        if not self._transport.enabled or self._subscription is not None:
            return

        async def handle(message: dict[str, Any]) -> None:
            if message.get("origin") == self._node_id:
                return
            await self._handle_remote(message)
            realtime_events_total.labels(self.topic, "in", message.get("action", "event")).inc()

        try:
            self._subscription = await self._transport.subscribe(self.topic, handle)
        except TransportUnavailableError:
            if not self._subscribe_warning_logged:
                logger.warning(
                    "Realtime backend unavailable; %s events will be limited to this instance",
                    self.topic,
                    exc_info=logger.isEnabledFor(logging.DEBUG),
                )
                self._subscribe_warning_logged = True
            self._subscription = None
            return
        realtime_subscriptions.labels(self.topic, self.backend).inc()
        self._subscribe_warning_logged = False

    async def stop(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
            realtime_subscriptions.labels(self.topic, self.backend).dec()
            self._subscription = None

    async def _handle_remote(self, message: dict[str, Any]) -> None:
        raise NotImplementedError

    async def _publish(self, action: str, payload: dict[str, Any]) -> None:
        if not self._transport.enabled:
            return
        envelope = {**payload, "action": action, "origin": self._node_id}
        try:
            await self._transport.publish(self.topic, envelope)
        except TransportUnavailableError:
            if not self._publish_warning_logged:
                logger.warning(
                    "Realtime backend unavailable while publishing %s %s event; operating in local-only mode",
                    self.topic,
                    action,
                    exc_info=logger.isEnabledFor(logging.DEBUG),
                )
                self._publish_warning_logged = True
            realtime_publish_errors_total.labels(self.topic, self.backend, "unavailable").inc()
        except Exception:
            realtime_publish_errors_total.labels(self.topic, self.backend, "error").inc()
            logger.exception("Unexpected error while publishing %s %s event", self.topic, action)
        else:
            self._publish_warning_logged = False
            realtime_events_total.labels(self.topic, "out", action).inc()
