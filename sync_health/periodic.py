"""
Cancellable periodic tasks for the monitor timer loops.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from utils.logging import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """Run a coroutine function every ``interval_seconds`` on the event loop."""

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        func: Callable[[], Awaitable[None]],
        run_immediately: bool = True
    ):
        self.name = name
        self.interval_seconds = interval_seconds
        self.func = func
        self.run_immediately = run_immediately

        self.iterations = 0
        self.failures = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop. Must be called from a running event loop."""
        if self.running:
            return

        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.info(f"Periodic task started: {self.name} (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is None:
            return

        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"Periodic task stopped: {self.name}")

    async def _run(self) -> None:
        if not self.run_immediately:
            await asyncio.sleep(self.interval_seconds)

        while True:
            try:
                await self.func()
                self.iterations += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failures += 1
                logger.error(f"Error in periodic task {self.name}: {e}")

            await asyncio.sleep(self.interval_seconds)
