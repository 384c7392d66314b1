"""In-memory blob store for local development and tests.

Set BLOB_STORE=memory to use this instead of a real remote.
"""

import asyncio
import logging

from decksync.domain.errors import NetworkUnavailable

logger = logging.getLogger(__name__)


class MemoryBlobStore:
    """In-memory BlobStore with call recording and failure injection."""

    def __init__(self, objects: dict[str, bytes] | None = None):
        self._objects: dict[str, bytes] = dict(objects or {})
        self._lock = asyncio.Lock()
        self.online = True
        self.calls: list[tuple[str, str]] = []
        # path -> remaining number of failures per operation
        self._failures: dict[tuple[str, str], int] = {}

    def fail(self, operation: str, path: str, times: int = 1) -> None:
        """Make the next `times` calls of operation on path raise NetworkUnavailable."""
        self._failures[(operation, path)] = times

    def _check(self, operation: str, path: str) -> None:
        self.calls.append((operation, path))
        if not self.online:
            raise NetworkUnavailable(f"{operation} {path}: store offline")
        remaining = self._failures.get((operation, path), 0)
        if remaining > 0:
            self._failures[(operation, path)] = remaining - 1
            raise NetworkUnavailable(f"{operation} {path}: injected failure")

    def calls_for(self, operation: str) -> list[str]:
        return [path for op, path in self.calls if op == operation]

    async def put(self, path: str, data: bytes) -> None:
        async with self._lock:
            self._check("put", path)
            self._objects[path] = bytes(data)

    async def get(self, path: str) -> bytes | None:
        async with self._lock:
            self._check("get", path)
            return self._objects.get(path)

    async def list(self, prefix: str) -> list[str]:
        async with self._lock:
            self._check("list", prefix)
            prefix = prefix.rstrip("/") + "/"
            return sorted(p for p in self._objects if p.startswith(prefix))

    async def delete(self, path: str) -> None:
        async with self._lock:
            self._check("delete", path)
            self._objects.pop(path, None)

    def snapshot(self) -> dict[str, bytes]:
        return dict(self._objects)
