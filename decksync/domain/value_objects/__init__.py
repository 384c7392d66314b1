from .deck_key import DeckKey
from .deck_sync_state import DeckSyncState
from .manifest_entry import ManifestEntry, is_valid_card_id
from .network_state import NetworkChangeType, NetworkStateChanged
from .review import ReviewOutcome, ReviewState
from .review_session_state import ReviewSessionState
from .sync_reason import SyncReason

__all__ = [
    "DeckKey",
    "DeckSyncState",
    "ManifestEntry",
    "NetworkChangeType",
    "NetworkStateChanged",
    "ReviewOutcome",
    "ReviewSessionState",
    "ReviewState",
    "SyncReason",
    "is_valid_card_id",
]
