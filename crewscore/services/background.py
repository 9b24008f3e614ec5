"""
crewscore.services.background — Fire-and-Forget Task Runner
============================================================

Side effects (badge re-checks, celebrations, alerts) are scheduled as
asyncio tasks the triggering call never awaits.  The registry keeps a
strong reference to each task until it finishes and logs any failure, so
nothing propagates back to the caller and nothing is silently lost.

Call :meth:`BackgroundTasks.drain` at shutdown (and in tests) to wait for
everything scheduled so far, including tasks spawned by other tasks.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Registry of in-flight fire-and-forget tasks."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task:
        """Schedule *coro* on the running loop and forget about it."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed", task.get_name(), exc_info=exc)

    async def drain(self) -> None:
        """Wait until no tasks are pending."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            # Let done-callbacks run before re-checking the set.
            await asyncio.sleep(0)
