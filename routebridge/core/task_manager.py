"""
Background task tracking for the aggregator actor and the driver watchers.

Every long-lived task is created through a :class:`TaskManager` so that
shutdown can cancel and await whatever is still pending, and so that a task
dying with an exception is logged instead of being silently dropped.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from loguru import logger


class TaskManager:
    """Owns a set of background tasks for one component."""

    def __init__(self, name: str = "TaskManager") -> None:
        self.name = name
        self.tasks: set[asyncio.Task[Any]] = set()
        self._shutdown_requested = False

    def create_task(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a background task on the running loop."""
        if self._shutdown_requested:
            coro.close()
            raise RuntimeError(f"[{self.name}] cannot create tasks after shutdown")

        task = asyncio.create_task(coro, name=name)
        self.tasks.add(task)
        task.add_done_callback(self._task_completed)

        logger.debug("[{}] Created task {}", self.name, task.get_name())
        return task

    def _task_completed(self, task: asyncio.Task[Any]) -> None:
        self.tasks.discard(task)

        if task.cancelled():
            logger.debug("[{}] Task {} was cancelled", self.name, task.get_name())
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "[{}] Task {} failed: {!r}", self.name, task.get_name(), error
            )

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel every pending task and wait for them to finish."""
        if self._shutdown_requested:
            return
        self._shutdown_requested = True

        pending = [task for task in self.tasks if not task.done()]
        if not pending:
            logger.debug("[{}] No tasks to shut down", self.name)
            return

        logger.debug("[{}] Shutting down {} tasks", self.name, len(pending))
        for task in pending:
            task.cancel()

        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        for task in still_pending:
            logger.warning(
                "[{}] Task {} did not stop within {}s", self.name, task.get_name(), timeout
            )

        self.tasks.clear()

    def __len__(self) -> int:
        return len(self.tasks)

    def __bool__(self) -> bool:
        return bool(self.tasks)
