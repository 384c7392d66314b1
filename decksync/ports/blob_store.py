"""Port interface for the remote blob store."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class BlobStore(Protocol):
    """Opaque remote object storage keyed by path.

    Paths look like {uid}/{sub_folder?}/{note_name}/cards.txt. Failures
    that may succeed later are raised as NetworkUnavailable or
    SyncTimeout; rejected requests as BlobStoreError.
    """

    async def put(self, path: str, data: bytes) -> None:
        """Create or replace the object at path.

        Args:
            path: Object path
            data: Object content
        """
        ...

    async def get(self, path: str) -> bytes | None:
        """Fetch an object.

        Args:
            path: Object path

        Returns:
            Object content, or None if it does not exist
        """
        ...

    async def list(self, prefix: str) -> list[str]:
        """List object paths under a prefix.

        Args:
            prefix: Path prefix (no trailing slash needed)

        Returns:
            Matching paths sorted alphabetically
        """
        ...

    async def delete(self, path: str) -> None:
        """Delete an object. Deleting a missing object is not an error.

        Args:
            path: Object path
        """
        ...
