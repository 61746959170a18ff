"""Redis pub/sub transport used to fan realtime events out across instances."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import redis.asyncio as redis_asyncio
from redis.exceptions import RedisError

from app.monitoring.metrics import realtime_transport_restarts_total


logger = logging.getLogger(__name__)

_REDIS_ERRORS: tuple[type[BaseException], ...] = (
    RedisError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)

_RECOVERY_BASE_DELAY = 0.5
_RECOVERY_MAX_DELAY = 30.0

BROADCAST_TOPIC = "broadcast"
ROOM_TOPIC = "rooms"

MessageHandler = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass(slots=True)
class BrokerConfig:
    """Configuration used for wiring the realtime transport layer."""

    redis_url: str | None
    prefix: str = "innerlight.realtime"
    node_id: str | None = None


class TransportUnavailableError(RuntimeError):
    """Raised when the broker is not configured or cannot be reached."""


class Subscription:
    """Handle returned when subscribing to a broker topic."""

    def __init__(self, name: str, cleanup: Callable[[], Awaitable[None]]) -> None:
        self._name = name
        self._cleanup = cleanup

    @property
    def name(self) -> str:
        return self._name

    async def close(self) -> None:
        await self._cleanup()


@dataclass(slots=True)
class _ReaderState:
    channel: str
    handler: MessageHandler
    task: asyncio.Task[Any] | None = None
    pubsub: Any | None = None
    active: bool = True
    suspending: bool = False


class RedisTransport:
    """Publish and subscribe to namespaced Redis channels carrying JSON payloads.

    A transport built without a Redis URL is disabled: callers check
    :attr:`enabled` and stay local-only. Each subscription owns a reader task;
    when a reader dies unexpectedly the connection is rebuilt with exponential
    backoff and every active subscription is re-attached.
    """

    def __init__(self, config: BrokerConfig) -> None:
        self._config = config
        self._redis: Any | None = None
        self._readers: list[_ReaderState] = []
        self._recovery_lock = asyncio.Lock()
        self._recovery_task: asyncio.Task[Any] | None = None

    @property
    def enabled(self) -> bool:
        return bool(self._config.redis_url)

    @property
    def connected(self) -> bool:
        return self._redis is not None

    @property
    def node_id(self) -> str | None:
        return self._config.node_id

    def channel_for(self, topic: str) -> str:
        prefix = self._config.prefix.rstrip(".")
        return f"{prefix}.{topic}" if prefix else topic

    async def start(self) -> None:
        if not self.enabled or self._redis is not None:
            return
        client = redis_asyncio.from_url(
            self._config.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        try:
            await client.ping()
        except _REDIS_ERRORS + (OSError,) as exc:
            with contextlib.suppress(Exception):
                await client.aclose()
            raise TransportUnavailableError("Redis backend is unavailable") from exc
        self._redis = client

    async def stop(self) -> None:
        for state in list(self._readers):
            await self._close_reader(state)
        self._readers.clear()
        if self._recovery_task is not None:
            self._recovery_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._recovery_task
            self._recovery_task = None
        if self._redis is not None:
            with contextlib.suppress(Exception):
                await self._redis.aclose()
            self._redis = None

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        if not self.enabled:
            raise TransportUnavailableError("No realtime broker is configured")
        if self._redis is None:
            await self.start()
        channel = self.channel_for(topic)
        try:
            await self._redis.publish(channel, json.dumps(payload))
        except _REDIS_ERRORS as exc:
            self._trigger_recovery("publish_failed")
            raise TransportUnavailableError("Redis backend is unavailable") from exc
        logger.debug("Published realtime payload", extra={"channel": channel})

    async def subscribe(self, topic: str, handler: MessageHandler) -> Subscription:
        if not self.enabled:
            raise TransportUnavailableError("No realtime broker is configured")
        if self._redis is None:
            await self.start()
        state = _ReaderState(channel=self.channel_for(topic), handler=handler)
        self._readers.append(state)
        try:
            await self._attach_reader(state)
        except TransportUnavailableError:
            await self._close_reader(state)
            self._trigger_recovery("subscribe_failed")
            raise

        async def cleanup() -> None:
            await self._close_reader(state)

        return Subscription(state.channel, cleanup)

    # ------------------------------------------------------------------
    # Reader lifecycle
    # ------------------------------------------------------------------
    async def _attach_reader(self, state: _ReaderState) -> None:
        if self._redis is None:
            raise TransportUnavailableError("Redis backend is not connected")
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(state.channel)
        except _REDIS_ERRORS as exc:
            with contextlib.suppress(Exception):
                await pubsub.aclose()
            raise TransportUnavailableError("Redis backend is unavailable") from exc
        state.pubsub = pubsub

        async def reader() -> None:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                raw = message.get("data")
                if not isinstance(raw, str):
                    continue
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Discarded malformed realtime payload", extra={"channel": state.channel})
                    continue
                if not isinstance(payload, dict):
                    continue
                try:
                    await state.handler(payload)
                except Exception:
                    logger.exception("Realtime handler failed", extra={"channel": state.channel})

        task = asyncio.create_task(reader(), name=f"realtime-redis-{state.channel}")
        state.task = task
        task.add_done_callback(
            lambda finished: asyncio.create_task(self._on_reader_done(state, finished))
        )

    async def _detach_reader(self, state: _ReaderState) -> None:
        state.suspending = True
        task = state.task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        state.task = None
        pubsub = state.pubsub
        if pubsub is not None:
            with contextlib.suppress(Exception):
                await pubsub.unsubscribe(state.channel)
            with contextlib.suppress(Exception):
                await pubsub.aclose()
        state.pubsub = None
        state.suspending = False

    async def _close_reader(self, state: _ReaderState) -> None:
        state.active = False
        await self._detach_reader(state)
        if state in self._readers:
            self._readers.remove(state)

    async def _on_reader_done(self, state: _ReaderState, task: asyncio.Task[Any]) -> None:
        if not state.active or state.suspending or task.cancelled():
            return
        if state.task is not task:
            return
        state.task = None
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "Redis subscription reader stopped due to error; scheduling recovery",
                exc_info=exc,
                extra={"channel": state.channel},
            )
        else:
            logger.warning(
                "Redis subscription reader exited unexpectedly; scheduling recovery",
                extra={"channel": state.channel},
            )
        self._trigger_recovery("reader_stopped")

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------
    def _trigger_recovery(self, reason: str) -> None:
        if not self.enabled:
            return
        if self._recovery_task is not None and not self._recovery_task.done():
            return
        logger.info("Scheduling Redis realtime recovery", extra={"reason": reason})
        self._recovery_task = asyncio.create_task(
            self._recovery_runner(reason), name="realtime-redis-recovery"
        )

    async def _recovery_runner(self, reason: str) -> None:
        attempt = 0
        while True:
            delay = min(_RECOVERY_BASE_DELAY * (2**attempt), _RECOVERY_MAX_DELAY)
            await asyncio.sleep(delay)
            try:
                await self._restart(reason)
            except Exception:
                attempt += 1
                logger.exception(
                    "Redis realtime recovery attempt failed",
                    extra={"attempt": attempt, "reason": reason},
                )
                continue
            break
        self._recovery_task = None

    async def _restart(self, reason: str) -> None:
        async with self._recovery_lock:
            for state in list(self._readers):
                await self._detach_reader(state)
            if self._redis is not None:
                with contextlib.suppress(Exception):
                    await self._redis.aclose()
                self._redis = None
            await self.start()
            for state in [state for state in self._readers if state.active]:
                await self._attach_reader(state)

        realtime_transport_restarts_total.labels("redis", reason).inc()
        logger.info(
            "Redis realtime backend recovered",
            extra={"reason": reason, "subscriptions": len(self._readers)},
        )
