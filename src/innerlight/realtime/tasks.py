"""Detached background writes whose failures are logged, never raised."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Set

from app.monitoring.metrics import persistence_failures_total


logger = logging.getLogger(__name__)


class DetachedTasks:
    """Holds fire-and-forget tasks until they finish.

    The event loop keeps only weak references to tasks, so every spawned task
    stays referenced here until its done-callback runs. A failing task is
    logged and counted under its ``kind``; nothing is propagated to the code
    that spawned it.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, kind: str) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=f"persist-{kind}")
        self._tasks.add(task)
        task.add_done_callback(lambda finished: self._on_done(finished, kind))
        return task

    def _on_done(self, task: asyncio.Task[Any], kind: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background %s write was cancelled", kind)
            return
        exc = task.exception()
        if exc is not None:
            persistence_failures_total.labels(kind).inc()
            logger.error("Background %s write failed", kind, exc_info=exc)

    async def drain(self) -> None:
        """Wait for every pending task; failures were already logged."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
