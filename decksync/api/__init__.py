"""API layer - FastAPI routes and dependencies."""

from .dependencies import (
    AuthSessionDep,
    DeckEditorDep,
    DeckKeyDep,
    NetworkMonitorDep,
    SessionManagerDep,
    SyncCoordinatorDep,
    UnsyncedQueueDep,
    cleanup_dependencies,
    get_auth_session,
    get_container,
    get_deck_editor,
    get_deck_key,
    get_network_monitor,
    get_session_manager,
    get_sync_coordinator,
    get_unsynced_queue,
    init_dependencies,
)
from .routes import decks_router, review_router, sync_router

__all__ = [
    # Routes
    "decks_router",
    "review_router",
    "sync_router",
    # Dependencies
    "init_dependencies",
    "cleanup_dependencies",
    "get_container",
    "get_sync_coordinator",
    "get_deck_editor",
    "get_session_manager",
    "get_unsynced_queue",
    "get_auth_session",
    "get_network_monitor",
    "get_deck_key",
    # Type aliases
    "SyncCoordinatorDep",
    "DeckEditorDep",
    "SessionManagerDep",
    "UnsyncedQueueDep",
    "AuthSessionDep",
    "NetworkMonitorDep",
    "DeckKeyDep",
]
