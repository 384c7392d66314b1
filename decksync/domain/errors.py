"""Error taxonomy for local storage and deck synchronization.

Propagation rules:
    - MalformedRecord is raised per line and contained by the loaders
      (logged, line skipped).
    - PlaceholderCard triggers recovery from an alternate copy before the
      card is treated as lost.
    - RecoverableSyncError subclasses re-enqueue the deck with backoff.
    - StorageUnavailable is fatal to the requested operation and surfaced.
"""

from datetime import datetime


class StorageUnavailable(Exception):
    """Local disk I/O failed (directory cannot be created, file cannot be written)."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        message = f"Storage unavailable at {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class MalformedRecord(Exception):
    """A single manifest or result-log line could not be parsed."""

    def __init__(self, line: str, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(f"{reason}: {line!r}")


class CardNotFound(Exception):
    """No card document exists for the requested id."""

    def __init__(self, card_id: str):
        self.card_id = card_id
        super().__init__(f"Card {card_id} not found")


class PlaceholderCard(Exception):
    """Card file exists but is empty, truncated or not a card document."""

    def __init__(self, card_id: str, reason: str = "placeholder content"):
        self.card_id = card_id
        self.reason = reason
        super().__init__(f"Card {card_id} is a placeholder ({reason})")


class RecoverableSyncError(Exception):
    """Base class for sync failures that should be retried later."""

    pass


class NetworkUnavailable(RecoverableSyncError):
    """Remote store unreachable, or no network/user available."""

    pass


class SyncTimeout(RecoverableSyncError):
    """A remote operation or deck pass exceeded its time limit."""

    pass


class BlobStoreError(Exception):
    """Remote store rejected a request (not worth retrying)."""

    def __init__(self, path: str, status_code: int | None = None, message: str = ""):
        self.path = path
        self.status_code = status_code
        detail = message or "request rejected"
        if status_code is not None:
            detail = f"{detail} (HTTP {status_code})"
        super().__init__(f"Blob store error for {path}: {detail}")


class RemoteConflict(Exception):
    """Local and remote copies disagree and last-write-wins picked one side.

    Never raised across component boundaries: the coordinator logs it as a
    warning and attaches it to the sync report.
    """

    def __init__(
        self,
        card_id: str,
        local_modified: datetime | None,
        remote_modified: datetime,
        resolution: str,
    ):
        self.card_id = card_id
        self.local_modified = local_modified
        self.remote_modified = remote_modified
        self.resolution = resolution
        super().__init__(
            f"Conflict on card {card_id}: local={local_modified} "
            f"remote={remote_modified}, resolved by {resolution}"
        )
