"""Reason a deck sits in the unsynced queue."""

from enum import StrEnum


class SyncReason(StrEnum):
    """Why a deck is waiting for sync.

    MANUAL: user asked for a sync
    OFFLINE: edited while offline or logged out
    ERROR: last sync attempt failed
    """

    MANUAL = "manual"
    OFFLINE = "offline"
    ERROR = "error"
