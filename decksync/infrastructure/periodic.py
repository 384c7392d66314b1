"""Cancellable periodic task with injectable sleep."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class PeriodicTask:
    """Run an async callback every interval seconds until stopped.

    The first run happens after one interval. Failures in the callback
    are logged and do not stop the loop. Tests pass a fake sleep to step
    the loop without wall-clock waits.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        sleep: SleepFn = asyncio.sleep,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._name = name
        self._interval = interval_seconds
        self._callback = callback
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None
        self.run_count = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop on the running event loop (no-op if already running)."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name=f"periodic:{self._name}")
        logger.info(f"Started periodic task {self._name} (every {self._interval}s)")

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info(f"Stopped periodic task {self._name}")

    async def run_once(self) -> None:
        """Invoke the callback once, logging any failure."""
        self.run_count += 1
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Periodic task {self._name} failed: {e}")

    async def _run(self) -> None:
        while True:
            await self._sleep(self._interval)
            await self.run_once()
