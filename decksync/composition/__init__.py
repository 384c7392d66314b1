"""
Composition Root.

Centralized dependency wiring for the application.
All factory functions that instantiate adapters belong here so the
domain layer never imports from adapters.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from decksync import config
from decksync.adapters.http_blob_store import HttpBlobStore
from decksync.adapters.http_network_monitor import HttpNetworkMonitor, StaticNetworkMonitor
from decksync.adapters.memory_blob_store import MemoryBlobStore
from decksync.domain.services.auth_session import AuthSession
from decksync.domain.services.deck_editor import DeckEditor
from decksync.domain.services.review_session_manager import ReviewSessionManager
from decksync.domain.services.sync_coordinator import SyncCoordinator
from decksync.domain.services.sync_triggers import SyncTriggerRouter
from decksync.domain.value_objects.deck_key import DeckKey
from decksync.infrastructure.card_repository import CardRepository
from decksync.infrastructure.clock import Clock, SystemClock
from decksync.infrastructure.deck_locks import DeckLocks
from decksync.infrastructure.manifest_store import ManifestStore
from decksync.infrastructure.periodic import SleepFn
from decksync.infrastructure.result_log import ResultLog
from decksync.infrastructure.retry import RetryPolicy
from decksync.infrastructure.sync_state_store import SyncStateStore
from decksync.infrastructure.unsynced_queue import UnsyncedQueue
from decksync.ports.blob_store import BlobStore

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """Every long-lived service of the application."""

    data_dir: Path
    auth: AuthSession
    network: StaticNetworkMonitor
    blob_store: BlobStore
    queue: UnsyncedQueue
    manifest_store: ManifestStore
    card_repository: CardRepository
    result_log: ResultLog
    sync_state_store: SyncStateStore
    deck_locks: DeckLocks
    coordinator: SyncCoordinator
    editor: DeckEditor
    sessions: ReviewSessionManager
    triggers: SyncTriggerRouter


def create_blob_store() -> BlobStore:
    """Create the blob store selected by BLOB_STORE.

    Raises:
        ValueError: If BLOB_STORE is not a known adapter type
    """
    store_type = config.get_blob_store_type()
    if store_type == "memory":
        logger.info("Using in-memory blob store (nothing leaves this process)")
        return MemoryBlobStore()
    if store_type == "http":
        url = config.get_blob_store_url()
        logger.info(f"Using HTTP blob store at {url}")
        return HttpBlobStore(base_url=url, token=config.get_blob_store_token())
    raise ValueError(f"Invalid BLOB_STORE: '{store_type}'. Valid options: 'http', 'memory'")


def create_network_monitor() -> StaticNetworkMonitor:
    """Probe-based monitor when NETWORK_PROBE_URL is set, manual otherwise."""
    probe_url = config.get_network_probe_url()
    if probe_url:
        return HttpNetworkMonitor(
            probe_url=probe_url, interval_seconds=config.get_network_probe_interval()
        )
    return StaticNetworkMonitor(available=True)


def _fallback_dirs_for(backup_dir: Path | None):
    def fallback_dirs(key: DeckKey) -> list[Path]:
        return [key.local_dir(backup_dir)] if backup_dir is not None else []

    return fallback_dirs


def build_container(
    data_dir: Path | None = None,
    queue_db_path: Path | None = None,
    blob_store: BlobStore | None = None,
    network: StaticNetworkMonitor | None = None,
    auth: AuthSession | None = None,
    clock: Clock | None = None,
    retry_policy: RetryPolicy | None = None,
    sync_timeout: float | None = None,
    drain_delay: float | None = None,
    tombstone_retention: timedelta | None = None,
    backup_dir: Path | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> Container:
    """Wire the application. Arguments left as None come from configuration.

    Returns:
        Fully wired container (background tasks not started)
    """
    data_dir = Path(data_dir or config.get_data_dir())
    clock = clock or SystemClock()
    auth = auth or AuthSession(config.get_initial_user_id())
    network = network or create_network_monitor()
    blob_store = blob_store or create_blob_store()

    manifest_store = ManifestStore(clock=clock)
    card_repository = CardRepository(placeholder_min_bytes=config.get_placeholder_min_bytes())
    result_log = ResultLog()
    sync_state_store = SyncStateStore()
    deck_locks = DeckLocks()
    queue = UnsyncedQueue(queue_db_path or config.get_queue_db_path(), clock=clock)

    coordinator = SyncCoordinator(
        data_dir=data_dir,
        blob_store=blob_store,
        unsynced_queue=queue,
        auth=auth,
        network=network,
        manifest_store=manifest_store,
        card_repository=card_repository,
        result_log=result_log,
        sync_state_store=sync_state_store,
        deck_locks=deck_locks,
        clock=clock,
        retry_policy=retry_policy or config.get_retry_policy(),
        sync_timeout=sync_timeout if sync_timeout is not None else config.get_sync_timeout(),
        drain_delay=drain_delay if drain_delay is not None else config.get_drain_delay(),
        tombstone_retention=tombstone_retention or config.get_tombstone_retention(),
        fallback_dirs=_fallback_dirs_for(backup_dir or config.get_backup_dir()),
        sleep=sleep,
    )
    editor = DeckEditor(
        data_dir=data_dir,
        manifest_store=manifest_store,
        card_repository=card_repository,
        deck_locks=deck_locks,
        clock=clock,
        on_change=coordinator.mark_dirty,
    )
    sessions = ReviewSessionManager(
        data_dir=data_dir,
        manifest_store=manifest_store,
        result_log=result_log,
        clock=clock,
        on_session_end=coordinator.on_session_end,
        timeout_minutes=config.get_session_timeout_minutes(),
        scan_interval_seconds=config.get_review_scan_interval(),
        sleep=sleep,
    )
    triggers = SyncTriggerRouter(coordinator, auth, network)
    triggers.attach()

    return Container(
        data_dir=data_dir,
        auth=auth,
        network=network,
        blob_store=blob_store,
        queue=queue,
        manifest_store=manifest_store,
        card_repository=card_repository,
        result_log=result_log,
        sync_state_store=sync_state_store,
        deck_locks=deck_locks,
        coordinator=coordinator,
        editor=editor,
        sessions=sessions,
        triggers=triggers,
    )
