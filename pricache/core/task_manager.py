"""
Background task tracking for the cache engine.

Stale-while-revalidate refreshes and the maintenance loop run as detached
asyncio tasks. Callers never await them, but the engine keeps a handle on
each so shutdown can cancel whatever is still running and tests can wait
for the engine to go idle.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from loguru import logger


class TaskManager:
    """Tracks background tasks and cancels them on shutdown."""

    def __init__(self, name: str = "TaskManager") -> None:
        self.name = name
        self.tasks: set[asyncio.Task[Any]] = set()
        self._shutdown_requested = False

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    def create_task(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a background task."""
        if self._shutdown_requested:
            coro.close()
            raise RuntimeError("Cannot create tasks after shutdown requested")

        task = asyncio.create_task(coro, name=name)
        self.tasks.add(task)
        task.add_done_callback(self._task_completed)

        logger.debug(f"[{self.name}] Created task {task.get_name()}")
        return task

    def _task_completed(self, task: asyncio.Task[Any]) -> None:
        self.tasks.discard(task)

        if task.cancelled():
            logger.debug(f"[{self.name}] Task {task.get_name()} was cancelled")
        elif task.exception():
            logger.error(
                f"[{self.name}] Task {task.get_name()} failed: {task.exception()}"
            )
        else:
            logger.debug(f"[{self.name}] Task {task.get_name()} completed")

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until every tracked task has finished.

        Tasks spawned while waiting are waited for too. Returns False on timeout.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self.tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            _, pending = await asyncio.wait(set(self.tasks), timeout=remaining)
            if pending and deadline is not None and loop.time() >= deadline:
                return False
        return True

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel all managed tasks and wait for them to finish."""
        if self._shutdown_requested:
            return

        self._shutdown_requested = True

        if not self.tasks:
            logger.debug(f"[{self.name}] No tasks to shutdown")
            return

        logger.info(f"[{self.name}] Shutting down {len(self.tasks)} background tasks")

        pending_tasks = [task for task in self.tasks if not task.done()]
        for task in pending_tasks:
            task.cancel()

        if pending_tasks:
            _, still_pending = await asyncio.wait(pending_tasks, timeout=timeout)
            for task in still_pending:
                logger.warning(f"[{self.name}] Task did not stop: {task.get_name()}")

        self.tasks.clear()
        logger.info(f"[{self.name}] Task shutdown complete")

    def __len__(self) -> int:
        return len(self.tasks)

    def __bool__(self) -> bool:
        return bool(self.tasks)


class ManagedObject:
    """Base class for objects that own background tasks."""

    def __init__(self, name: str | None = None) -> None:
        self._task_manager = TaskManager(name or self.__class__.__name__)

    def create_task(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create a managed background task."""
        return self._task_manager.create_task(coro, name)

    async def shutdown(self) -> None:
        """Shutdown the object and all its background tasks."""
        await self._task_manager.shutdown()
