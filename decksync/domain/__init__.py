# Domain layer - Business logic (NO adapter dependencies)

from .errors import (
    BlobStoreError,
    CardNotFound,
    MalformedRecord,
    NetworkUnavailable,
    PlaceholderCard,
    RecoverableSyncError,
    RemoteConflict,
    StorageUnavailable,
    SyncTimeout,
)
from .value_objects import (
    DeckKey,
    DeckSyncState,
    ManifestEntry,
    ReviewOutcome,
    ReviewState,
    SyncReason,
)

__all__ = [
    "BlobStoreError",
    "CardNotFound",
    "DeckKey",
    "DeckSyncState",
    "MalformedRecord",
    "ManifestEntry",
    "NetworkUnavailable",
    "PlaceholderCard",
    "RecoverableSyncError",
    "RemoteConflict",
    "ReviewOutcome",
    "ReviewState",
    "StorageUnavailable",
    "SyncReason",
    "SyncTimeout",
]
