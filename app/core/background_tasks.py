"""Detached background work for side effects that must not block requests."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """Runs fire-and-forget coroutines on the event loop.

    Failures are logged and never propagate to whoever submitted the work.
    In-flight tasks are tracked so they are not garbage collected early and
    can be drained on shutdown.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        """Schedule ``coro`` without awaiting it."""
        task = asyncio.create_task(self._run(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            logger.warning(f"Background task cancelled: {name}")
            raise
        except Exception:
            logger.exception(f"Background task failed: {name}")

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight tasks, cancelling whatever is left after ``timeout``."""
        while self._tasks:
            tasks = list(self._tasks)
            _, not_done = await asyncio.wait(tasks, timeout=timeout)
            if not_done:
                logger.warning(f"Cancelling {len(not_done)} background tasks on shutdown")
                for task in not_done:
                    task.cancel()
                await asyncio.gather(*not_done, return_exceptions=True)
                return


# Singleton instance
background_tasks = BackgroundTaskRunner()
