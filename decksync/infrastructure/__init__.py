"""Infrastructure layer - local storage, retry and scheduling primitives."""

from .card_repository import CardRepository
from .clock import Clock, SystemClock
from .deck_locks import DeckLocks
from .manifest_store import ManifestStore
from .periodic import PeriodicTask
from .result_log import ResultLog
from .retry import RetryPolicy, retry_operation
from .single_flight import SingleFlight
from .sync_state_store import DeckSyncWatermark, SyncStateStore
from .unsynced_queue import SyncStatusSummary, UnsyncedDeckEntry, UnsyncedQueue

__all__ = [
    "CardRepository",
    "Clock",
    "DeckLocks",
    "DeckSyncWatermark",
    "ManifestStore",
    "PeriodicTask",
    "ResultLog",
    "RetryPolicy",
    "SingleFlight",
    "SyncStateStore",
    "SyncStatusSummary",
    "SystemClock",
    "UnsyncedDeckEntry",
    "UnsyncedQueue",
    "retry_operation",
]
