"""Per-deck asyncio mutexes."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from decksync.domain.value_objects.deck_key import DeckKey


class DeckLocks:
    """One asyncio.Lock per deck key.

    Manifest mutations are full-file rewrites; every writer of a deck
    (editor, sync pass) takes that deck's lock first.
    """

    def __init__(self) -> None:
        self._locks: dict[DeckKey, asyncio.Lock] = {}

    def lock_for(self, key: DeckKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def is_locked(self, key: DeckKey) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: DeckKey) -> AsyncIterator[None]:
        async with self.lock_for(key):
            yield
