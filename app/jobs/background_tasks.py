"""
In-process background task runner.

Work that must happen after an HTTP response has been sent (vendor device
registration, build dispatch) is submitted here as a named task. Each task
runs inside its own error boundary, and `wait_idle()` lets tests and the
shutdown sequence await completion deterministically.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

TaskCoroutine = Callable[..., Awaitable[Any]]


class BackgroundTaskRunner:
    """Tracks fire-and-forget asyncio tasks so they are neither lost nor silent."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, func: TaskCoroutine, *args: Any, **kwargs: Any) -> asyncio.Task:
        """
        Schedule `func(*args, **kwargs)` on the running loop.

        Must be called from inside a running event loop.
        """
        task = asyncio.create_task(self._run(name, func, *args, **kwargs), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.debug("Background task submitted", task=name, pending=len(self._tasks))
        return task

    async def _run(self, name: str, func: TaskCoroutine, *args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except asyncio.CancelledError:
            logger.warning("Background task cancelled", task=name)
            raise
        except Exception as e:
            logger.error(
                "Background task failed",
                task=name,
                error=f"{type(e).__name__}: {e}",
                exc_info=True,
            )
            return None

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait for every task submitted so far, including ones they submit."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            _, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                logger.warning("Background tasks still running after timeout", pending=len(not_done))
                return

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Drain, then cancel whatever is left."""
        await self.wait_idle(timeout=timeout)
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


background_runner = BackgroundTaskRunner()
