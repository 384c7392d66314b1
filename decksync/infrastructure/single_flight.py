"""Per-key single-flight execution on asyncio."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class SingleFlight(Generic[K, T]):
    """At most one running task per key; concurrent callers share its result.

    Waiters await the shared task through asyncio.shield, so a cancelled
    waiter does not cancel the work other callers depend on. Use
    cancel_all() to stop in-flight work (e.g. on shutdown).
    """

    def __init__(self) -> None:
        self._inflight: dict[K, asyncio.Task[T]] = {}
        self._lock = asyncio.Lock()

    async def run(self, key: K, factory: Callable[[], Awaitable[T]]) -> T:
        """Run factory() for key, or join the task already running for it.

        Args:
            key: Resource key
            factory: Zero-argument coroutine function producing the work

        Returns:
            Result of the (possibly shared) task
        """
        async with self._lock:
            task = self._inflight.get(key)
            if task is None:
                task = asyncio.create_task(factory(), name=f"single-flight:{key}")
                self._inflight[key] = task
                task.add_done_callback(lambda t, k=key: self._discard(k, t))
            else:
                logger.debug(f"Joining in-flight task for {key}")
        return await asyncio.shield(task)

    def _discard(self, key: K, task: asyncio.Task[T]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def is_in_flight(self, key: K) -> bool:
        task = self._inflight.get(key)
        return task is not None and not task.done()

    def in_flight_keys(self) -> list[K]:
        return [k for k, t in self._inflight.items() if not t.done()]

    async def cancel_all(self) -> int:
        """Cancel every running task and wait for them to unwind.

        Returns:
            Number of tasks cancelled
        """
        tasks = [t for t in self._inflight.values() if not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)
