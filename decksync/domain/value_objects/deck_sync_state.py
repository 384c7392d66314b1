"""Per-deck synchronization state."""

from enum import StrEnum


class DeckSyncState(StrEnum):
    """Runtime sync state of one deck key (not persisted).

    State machine:
        IDLE -> SYNCING -> IDLE      (success)
                        -> BACKOFF   (recoverable failure)
                        -> ERROR     (non-recoverable failure)
        BACKOFF -> IDLE              (delay elapsed)
        BACKOFF -> SYNCING           (explicit trigger)
        ERROR   -> SYNCING           (explicit trigger)
    """

    IDLE = "idle"
    SYNCING = "syncing"
    BACKOFF = "backoff"
    ERROR = "error"

    def can_start_sync(self) -> bool:
        """Check if a new pass may start from this state."""
        return self is not DeckSyncState.SYNCING

    def allowed_transitions(self) -> set["DeckSyncState"]:
        return _TRANSITIONS[self]


_TRANSITIONS: dict[DeckSyncState, set[DeckSyncState]] = {
    DeckSyncState.IDLE: {DeckSyncState.SYNCING},
    DeckSyncState.SYNCING: {DeckSyncState.IDLE, DeckSyncState.BACKOFF, DeckSyncState.ERROR},
    DeckSyncState.BACKOFF: {DeckSyncState.IDLE, DeckSyncState.SYNCING},
    DeckSyncState.ERROR: {DeckSyncState.SYNCING},
}
