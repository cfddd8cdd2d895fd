from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from functools import lru_cache
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """Runs coroutines detached from the request that scheduled them.

    Failures are terminal: they are logged and never retried or re-raised.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[None]:
        task = asyncio.create_task(self._run(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self, timeout_seconds: float | None = None) -> None:
        if not self._tasks:
            return
        _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout_seconds)
        if still_running:
            logger.warning("abandoning %s background task(s) still running", len(still_running))

    @staticmethod
    async def _run(coro: Coroutine[Any, Any, Any], name: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            logger.warning("background task cancelled name=%s", name)
            raise
        except Exception:
            logger.exception("background task failed name=%s", name)


@lru_cache
def get_task_runner() -> BackgroundTaskRunner:
    return BackgroundTaskRunner()
