"""FastAPI dependency injection module.

Provides singleton instances of services for API routes.
Uses lifespan events for initialization and cleanup.
"""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status

from decksync.adapters.http_network_monitor import HttpNetworkMonitor, StaticNetworkMonitor
from decksync.composition import Container, build_container
from decksync.domain.services.auth_session import AuthSession
from decksync.domain.services.deck_editor import DeckEditor
from decksync.domain.services.review_session_manager import ReviewSessionManager
from decksync.domain.services.sync_coordinator import SyncCoordinator
from decksync.domain.value_objects.deck_key import DeckKey
from decksync.infrastructure.unsynced_queue import UnsyncedQueue

logger = logging.getLogger(__name__)

# Singleton stored at module level
_container: Container | None = None


async def init_dependencies(container: Container | None = None) -> None:
    """Initialize all singleton dependencies.

    Called during FastAPI lifespan startup. Tests pass a prebuilt container.
    """
    global _container

    _container = container or build_container()
    _container.data_dir.mkdir(parents=True, exist_ok=True)

    _container.sessions.start_scanner()
    if isinstance(_container.network, HttpNetworkMonitor):
        _container.network.start()

    pending = await _container.queue.count()
    logger.info(f"Dependencies ready: data_dir={_container.data_dir}, {pending} deck(s) queued")

    # Flush whatever was left queued by the previous run
    if pending and _container.coordinator.can_sync():
        _container.coordinator.schedule_drain()


async def cleanup_dependencies() -> None:
    """Cleanup dependencies on shutdown.

    Called during FastAPI lifespan shutdown. Ends sessions (queuing their
    decks), stops background tasks and closes connections.
    """
    global _container

    if _container is None:
        return
    container, _container = _container, None

    await container.sessions.stop_scanner()
    await container.sessions.end_all_sessions()
    await container.coordinator.shutdown()

    if isinstance(container.network, HttpNetworkMonitor):
        await container.network.close()
    if hasattr(container.blob_store, "close"):
        await container.blob_store.close()


def get_container() -> Container:
    """Dependency: Get the service container."""
    if _container is None:
        raise RuntimeError("Dependencies not initialized. Call init_dependencies first.")
    return _container


def get_sync_coordinator() -> SyncCoordinator:
    """Dependency: Get SyncCoordinator instance."""
    return get_container().coordinator


def get_deck_editor() -> DeckEditor:
    """Dependency: Get DeckEditor instance."""
    return get_container().editor


def get_session_manager() -> ReviewSessionManager:
    """Dependency: Get ReviewSessionManager instance."""
    return get_container().sessions


def get_unsynced_queue() -> UnsyncedQueue:
    """Dependency: Get UnsyncedQueue instance."""
    return get_container().queue


def get_auth_session() -> AuthSession:
    """Dependency: Get AuthSession instance."""
    return get_container().auth


def get_network_monitor() -> StaticNetworkMonitor:
    """Dependency: Get network monitor instance."""
    return get_container().network


def get_deck_key(note_name: str, sub_folder: str | None = None) -> DeckKey:
    """Dependency: Build the deck key from the path and query.

    Raises:
        HTTPException: 422 if the name or sub-folder is not a single path segment
    """
    try:
        return DeckKey(note_name, sub_folder)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": {"code": "INVALID_DECK", "message": str(e)}},
        ) from None


# Type aliases for dependency injection
DeckKeyDep = Annotated[DeckKey, Depends(get_deck_key)]
SyncCoordinatorDep = Annotated[SyncCoordinator, Depends(get_sync_coordinator)]
DeckEditorDep = Annotated[DeckEditor, Depends(get_deck_editor)]
SessionManagerDep = Annotated[ReviewSessionManager, Depends(get_session_manager)]
UnsyncedQueueDep = Annotated[UnsyncedQueue, Depends(get_unsynced_queue)]
AuthSessionDep = Annotated[AuthSession, Depends(get_auth_session)]
NetworkMonitorDep = Annotated[StaticNetworkMonitor, Depends(get_network_monitor)]
