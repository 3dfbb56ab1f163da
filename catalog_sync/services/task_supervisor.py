from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Coroutine
from contextlib import suppress
from typing import Any


logger = logging.getLogger(__name__)

Continuation = Callable[[Any], Awaitable[Any] | None]


class BackgroundTaskSupervisor:
    """
    Owns detached tasks (background imports, index rebuilds) for the app lifetime.

    Tasks are held by strong reference until they finish. Every outcome is logged.
    `on_success` receives the task result; when it returns a coroutine, that
    coroutine is spawned as the next link of the chain.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        *,
        name: str,
        on_success: Continuation | None = None,
    ) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, on_success))
        return task

    def _on_done(self, task: asyncio.Task, on_success: Continuation | None) -> None:
        self._tasks.discard(task)
        name = task.get_name()
        if task.cancelled():
            logger.info("Background task %s cancelled", name)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed", name, exc_info=exc)
            return
        logger.info("Background task %s finished", name)
        if on_success is None:
            return
        try:
            follow_up = on_success(task.result())
        except Exception:
            logger.exception("Continuation of background task %s failed", name)
            return
        if inspect.iscoroutine(follow_up):
            self.spawn(follow_up, name=f"{name}:next")

    async def wait_idle(self) -> None:
        """Wait until every task, including chained follow-ups, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            # Done callbacks run on the next loop iteration and may spawn follow-ups.
            await asyncio.sleep(0)

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        with suppress(asyncio.CancelledError):
            await asyncio.gather(*tasks, return_exceptions=True)
