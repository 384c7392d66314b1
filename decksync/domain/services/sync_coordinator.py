"""Sync coordinator: bidirectional deck sync with the remote blob store."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import TypeVar

from decksync.domain.errors import (
    BlobStoreError,
    CardNotFound,
    NetworkUnavailable,
    PlaceholderCard,
    RecoverableSyncError,
    RemoteConflict,
    StorageUnavailable,
    SyncTimeout,
)
from decksync.domain.value_objects.deck_key import DeckKey
from decksync.domain.value_objects.deck_sync_state import DeckSyncState
from decksync.domain.value_objects.manifest_entry import ManifestEntry
from decksync.domain.value_objects.sync_reason import SyncReason
from decksync.infrastructure.card_repository import CARDS_DIR, CardRepository
from decksync.infrastructure.clock import Clock, SystemClock
from decksync.infrastructure.deck_locks import DeckLocks
from decksync.infrastructure.manifest_store import (
    MANIFEST_FILE,
    ManifestStore,
    parse_manifest,
    serialize_manifest,
)
from decksync.infrastructure.periodic import SleepFn
from decksync.infrastructure.result_log import (
    RESULT_FILE,
    ResultLog,
    encode_lines,
    lines_digest,
    parse_text,
)
from decksync.infrastructure.retry import RetryPolicy, is_transient_error, retry_operation
from decksync.infrastructure.single_flight import SingleFlight
from decksync.infrastructure.sync_state_store import DeckSyncWatermark, SyncStateStore
from decksync.infrastructure.unsynced_queue import UnsyncedQueue
from decksync.ports.auth import AuthState
from decksync.ports.blob_store import BlobStore
from decksync.ports.network import NetworkMonitor

logger = logging.getLogger(__name__)

T = TypeVar("T")

FallbackDirs = Callable[[DeckKey], list[Path]]


@dataclass
class SyncReport:
    """Outcome of one deck pass."""

    deck: DeckKey
    pulled: int = 0
    pushed: int = 0
    deleted_remote: int = 0
    deleted_local: int = 0
    recovered: int = 0
    results_merged: int = 0
    purged: int = 0
    active_count: int = 0
    conflicts: list[RemoteConflict] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)
    error: str | None = None
    skipped_reason: str | None = None
    state: DeckSyncState = DeckSyncState.IDLE

    @property
    def complete(self) -> bool:
        """Pull and push both finished without any failure."""
        return not self.failures and self.error is None and self.skipped_reason is None


@dataclass
class DrainResult:
    """Outcome of draining the unsynced queue."""

    succeeded: list[DeckKey] = field(default_factory=list)
    failed: list[DeckKey] = field(default_factory=list)
    stopped_early: bool = False

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed)


@dataclass
class _PassContext:
    key: DeckKey
    user_id: str
    deck_dir: Path
    watermark: DeckSyncWatermark
    report: SyncReport
    remote_manifest: bytes | None = None
    remote_entries: dict[str, ManifestEntry] = field(default_factory=dict)
    failed_ids: set[str] = field(default_factory=set)


class SyncCoordinator:
    """Keeps local decks and the remote blob store consistent.

    Handles:
    - Pull: remote manifest entries strictly newer than local win
    - Push: entries changed since their synced watermark are uploaded,
      tombstones become remote deletes
    - Result log sync against the copy both sides last agreed on
    - Per-deck single-flight and state machine, per-deck lock
    - Queue drain on login / reconnect, one deck at a time

    Remote calls retry transient failures with exponential backoff. A deck
    is removed from the unsynced queue only after a complete pass.
    """

    def __init__(
        self,
        data_dir: Path,
        blob_store: BlobStore,
        unsynced_queue: UnsyncedQueue,
        auth: AuthState,
        network: NetworkMonitor,
        manifest_store: ManifestStore,
        card_repository: CardRepository,
        result_log: ResultLog,
        sync_state_store: SyncStateStore,
        deck_locks: DeckLocks,
        clock: Clock | None = None,
        retry_policy: RetryPolicy | None = None,
        sync_timeout: float = 15.0,
        drain_delay: float = 1.0,
        tombstone_retention: timedelta = timedelta(days=30),
        fallback_dirs: FallbackDirs | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        """Initialize sync coordinator.

        Args:
            data_dir: Root directory holding the decks
            blob_store: Remote store port
            unsynced_queue: Durable queue of decks pending sync
            auth: Signed-in user
            network: Connectivity
            manifest_store: Manifest access
            card_repository: Card documents
            result_log: Result logs
            sync_state_store: Per-deck watermarks
            deck_locks: Per-deck mutexes shared with editors
            clock: Time source
            retry_policy: Backoff for remote calls and failed decks
            sync_timeout: Time limit of one deck pass, in seconds
            drain_delay: Pause between decks while draining, in seconds
            tombstone_retention: Age after confirmed remote delete before purge
            fallback_dirs: Alternate deck directories for placeholder recovery
            sleep: Sleep function (drain delay)
        """
        self._data_dir = Path(data_dir)
        self._blob_store = blob_store
        self._queue = unsynced_queue
        self._auth = auth
        self._network = network
        self._manifest = manifest_store
        self._cards = card_repository
        self._results = result_log
        self._sync_state = sync_state_store
        self._locks = deck_locks
        self._clock = clock or SystemClock()
        self._retry_policy = retry_policy or RetryPolicy()
        self._sync_timeout = sync_timeout
        self._drain_delay = drain_delay
        self._tombstone_retention = tombstone_retention
        self._fallback_dirs = fallback_dirs or (lambda key: [])
        self._sleep = sleep

        self._states: dict[DeckKey, DeckSyncState] = {}
        self._backoff_until: dict[DeckKey, datetime] = {}
        self._deck_flights: SingleFlight[DeckKey, SyncReport] = SingleFlight()
        self._drain_flight: SingleFlight[str, DrainResult] = SingleFlight()
        self._background: set[asyncio.Task] = set()

    # --- state machine ---

    def get_state(self, key: DeckKey) -> DeckSyncState:
        """Current state; an elapsed backoff reads as IDLE."""
        state = self._states.get(key, DeckSyncState.IDLE)
        if state is DeckSyncState.BACKOFF:
            until = self._backoff_until.get(key)
            if until is None or self._clock.now() >= until:
                self._transition(key, DeckSyncState.IDLE)
                return DeckSyncState.IDLE
        return state

    def all_states(self) -> dict[DeckKey, DeckSyncState]:
        return {key: self.get_state(key) for key in list(self._states)}

    def _transition(self, key: DeckKey, new_state: DeckSyncState) -> None:
        current = self._states.get(key, DeckSyncState.IDLE)
        if current is new_state:
            return
        if new_state not in current.allowed_transitions():
            raise ValueError(f"Invalid sync transition for {key}: {current} -> {new_state}")
        self._states[key] = new_state
        if new_state is not DeckSyncState.BACKOFF:
            self._backoff_until.pop(key, None)
        logger.debug(f"Deck {key}: {current} -> {new_state}")

    def can_sync(self) -> bool:
        return self._auth.current_user_id() is not None and self._network.is_network_available()

    # --- triggers ---

    async def sync_deck(self, key: DeckKey) -> SyncReport:
        """Sync one deck now, or join the pass already running for it.

        Raises:
            StorageUnavailable: If local storage failed (deck stays queued)
        """
        return await self._deck_flights.run(key, lambda: self._run_sync(key))

    async def request_sync(self, key: DeckKey, reason: SyncReason = SyncReason.MANUAL) -> SyncReport | None:
        """Queue a deck and sync it right away when possible.

        Returns:
            The pass report, or None if offline/logged out (deck stays queued)
        """
        if not self.can_sync():
            await self._queue.enqueue_deck(key, SyncReason.OFFLINE)
            logger.info(f"Deck {key} queued for later sync (offline)")
            return None
        await self._queue.enqueue_deck(key, reason)
        return await self.sync_deck(key)

    async def mark_dirty(self, key: DeckKey) -> None:
        """Record a local change: queue the deck and sync in the background if online."""
        if not self.can_sync():
            await self._queue.enqueue_deck(key, SyncReason.OFFLINE)
            return
        await self._queue.enqueue_deck(key, SyncReason.MANUAL)
        if self._deck_flights.is_in_flight(key):
            self._spawn(self._sync_after_current(key), f"resync:{key}")
        else:
            self._spawn(self.sync_deck(key), f"sync:{key}")

    async def _sync_after_current(self, key: DeckKey) -> SyncReport:
        # The running pass may have read the manifest before this change
        await self.sync_deck(key)
        return await self.sync_deck(key)

    async def on_session_end(self, key: DeckKey, answers: int) -> None:
        """Review session hook: results changed, push them."""
        logger.info(f"Session on {key} recorded {answers} answer(s), scheduling sync")
        await self.mark_dirty(key)

    async def drain_queue(self) -> DrainResult:
        """Sync every due queued deck, in enqueue order, one at a time.

        Concurrent calls join the running drain.
        """
        return await self._drain_flight.run("drain", self._drain)

    def schedule_drain(self) -> asyncio.Task:
        """Start a drain in the background (used by event triggers)."""
        return self._spawn(self.drain_queue(), "drain")

    async def shutdown(self) -> None:
        """Cancel in-flight passes and drains."""
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
        cancelled = await self._drain_flight.cancel_all()
        cancelled += await self._deck_flights.cancel_all()
        if cancelled:
            logger.info(f"Cancelled {cancelled} sync task(s) on shutdown")

    def _spawn(self, coro: Awaitable[T], name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Background task {task.get_name()} failed: {error}")

    async def _drain(self) -> DrainResult:
        result = DrainResult()
        entries = await self._queue.dequeue_all_due(self._clock.now())
        if not entries:
            return result

        logger.info(f"Draining {len(entries)} queued deck(s)")
        for i, entry in enumerate(entries):
            if not self.can_sync():
                logger.info("Stopping drain: offline or logged out")
                result.stopped_early = True
                break
            if i > 0 and self._drain_delay > 0:
                await self._sleep(self._drain_delay)

            key = entry.key
            try:
                report = await self.sync_deck(key)
            except StorageUnavailable as e:
                logger.warning(f"Drain: deck {key} failed on local storage: {e}")
                result.failed.append(key)
                continue

            if report.complete:
                result.succeeded.append(key)
            else:
                result.failed.append(key)

        logger.info(
            f"Drain complete: {len(result.succeeded)} synced, {len(result.failed)} failed"
        )
        return result

    # --- deck pass ---

    async def _run_sync(self, key: DeckKey) -> SyncReport:
        user_id = self._auth.current_user_id()
        if user_id is None or not self._network.is_network_available():
            reason = "logged_out" if user_id is None else "offline"
            await self._queue.enqueue_deck(key, SyncReason.OFFLINE)
            logger.info(f"Deck {key} not synced ({reason}), kept in queue")
            return SyncReport(deck=key, skipped_reason=reason, state=self.get_state(key))

        self.get_state(key)
        self._transition(key, DeckSyncState.SYNCING)
        try:
            report = await asyncio.wait_for(
                self._sync_pass(key, user_id), timeout=self._sync_timeout
            )
        except asyncio.CancelledError:
            self._states[key] = DeckSyncState.IDLE
            raise
        except TimeoutError:
            error = SyncTimeout(f"Sync of {key} exceeded {self._sync_timeout}s")
            return await self._fail(key, error, recoverable=True)
        except RecoverableSyncError as e:
            return await self._fail(key, e, recoverable=True)
        except StorageUnavailable as e:
            await self._fail(key, e, recoverable=False)
            raise
        except (BlobStoreError, PlaceholderCard, CardNotFound) as e:
            return await self._fail(key, e, recoverable=False)

        if report.complete:
            self._transition(key, DeckSyncState.IDLE)
            logger.info(
                f"Synced {key}: pulled={report.pulled} pushed={report.pushed} "
                f"deleted_remote={report.deleted_remote} conflicts={len(report.conflicts)}"
            )
        else:
            summary = "; ".join(report.failures)
            failed = await self._fail(key, NetworkUnavailable(summary), recoverable=True)
            report.error = failed.error
        report.state = self.get_state(key)
        return report

    async def _fail(self, key: DeckKey, error: Exception, recoverable: bool) -> SyncReport:
        existing = await self._queue.get(key.note_name, key.sub_folder)
        failures = (existing.retry_count if existing else 0) + 1

        next_attempt_at = None
        if recoverable:
            delay = self._retry_policy.backoff_for(failures)
            next_attempt_at = self._clock.now() + timedelta(seconds=delay)
            self._transition(key, DeckSyncState.BACKOFF)
            self._backoff_until[key] = next_attempt_at
        else:
            self._transition(key, DeckSyncState.ERROR)

        await self._queue.record_failure(key, str(error), next_attempt_at)
        level = logging.WARNING if recoverable else logging.ERROR
        logger.log(level, f"Sync of {key} failed ({'recoverable' if recoverable else 'fatal'}): {error}")
        return SyncReport(deck=key, error=str(error), state=self._states[key])

    async def _sync_pass(self, key: DeckKey, user_id: str) -> SyncReport:
        deck_dir = key.local_dir(self._data_dir)
        async with self._locks.hold(key):
            watermark = await self._local(self._sync_state.load, deck_dir)
            ctx = _PassContext(
                key=key,
                user_id=user_id,
                deck_dir=deck_dir,
                watermark=watermark,
                report=SyncReport(deck=key),
            )
            try:
                await self._pull(ctx)
                await self._push(ctx)
                await self._sync_results(ctx)
            finally:
                await self._local(self._sync_state.save, deck_dir, watermark)

            report = ctx.report
            if report.complete:
                report.purged = await self._purge_tombstones(ctx)
                watermark.last_synced_at = self._clock.now()
                await self._local(self._sync_state.save, deck_dir, watermark)
                # under the deck lock: a later edit must re-queue after this removal
                await self._queue.remove(key.note_name, key.sub_folder)
            report.active_count = await self._local(
                self._manifest.recompute_active_count, deck_dir
            )
            return report

    # --- pull ---

    async def _pull(self, ctx: _PassContext) -> None:
        path = ctx.key.remote_path(ctx.user_id, MANIFEST_FILE)
        ctx.remote_manifest = await self._remote_get(path)
        if ctx.remote_manifest is None:
            return

        remote_entries = parse_manifest(
            ctx.remote_manifest.decode("utf-8", errors="replace"), source=f"remote:{path}"
        )
        ctx.remote_entries = {e.id: e for e in remote_entries}
        local_entries = await self._local(self._manifest.load, ctx.deck_dir)
        local = {e.id: e for e in local_entries}

        for remote in remote_entries:
            local_entry = local.get(remote.id)
            if not self._remote_wins(ctx, local_entry, remote):
                continue
            try:
                if remote.tombstone:
                    await self._apply_remote_tombstone(ctx, remote)
                else:
                    await self._download(ctx, remote)
            except (RecoverableSyncError, BlobStoreError, PlaceholderCard) as e:
                ctx.failed_ids.add(remote.id)
                ctx.report.failures.append(f"pull {remote.id}: {e}")
                logger.warning(f"Pull of card {remote.id} in {ctx.key} failed: {e}")

    def _remote_wins(
        self, ctx: _PassContext, local: ManifestEntry | None, remote: ManifestEntry
    ) -> bool:
        """Last-write-wins; on an exact tie a tombstone beats a live entry."""
        if local is None:
            # Never had it: nothing to delete
            return not remote.tombstone

        if remote.last_modified > local.last_modified:
            if ctx.watermark.needs_push(local.id, local.last_modified):
                self._conflict(ctx, local, remote, "remote is newer")
            return True

        if remote.last_modified == local.last_modified and remote.tombstone != local.tombstone:
            winner = "remote tombstone" if remote.tombstone else "local tombstone"
            self._conflict(ctx, local, remote, f"timestamp tie, {winner} wins")
            return remote.tombstone

        return False

    def _conflict(
        self, ctx: _PassContext, local: ManifestEntry, remote: ManifestEntry, resolution: str
    ) -> None:
        conflict = RemoteConflict(local.id, local.last_modified, remote.last_modified, resolution)
        ctx.report.conflicts.append(conflict)
        logger.warning(f"Deck {ctx.key}: {conflict}")

    async def _download(self, ctx: _PassContext, remote: ManifestEntry) -> None:
        path = ctx.key.remote_path(ctx.user_id, CARDS_DIR, f"{remote.id}.json")
        data = await self._remote_get(path)
        if data is None:
            raise BlobStoreError(path, 404, "card listed in remote manifest is missing")
        await self._local(self._cards.write_bytes, ctx.deck_dir, remote.id, data)
        await self._local(self._manifest.apply, ctx.deck_dir, remote)
        ctx.watermark.mark_synced(remote.id, remote.last_modified)
        ctx.report.pulled += 1
        logger.debug(f"Pulled card {remote.id} into {ctx.key}")

    async def _apply_remote_tombstone(self, ctx: _PassContext, remote: ManifestEntry) -> None:
        await self._local(self._manifest.apply, ctx.deck_dir, remote)
        await self._local(self._cards.delete, ctx.deck_dir, remote.id)
        ctx.watermark.mark_remote_deleted(remote.id, remote.last_modified, self._clock.now())
        ctx.report.deleted_local += 1
        logger.debug(f"Card {remote.id} deleted remotely, removed from {ctx.key}")

    # --- push ---

    async def _push(self, ctx: _PassContext) -> None:
        entries = await self._local(self._manifest.load, ctx.deck_dir)
        for entry in entries:
            if entry.id in ctx.failed_ids:
                continue
            if not ctx.watermark.needs_push(entry.id, entry.last_modified):
                continue
            try:
                if entry.tombstone:
                    await self._push_delete(ctx, entry)
                else:
                    await self._push_card(ctx, entry)
            except (RecoverableSyncError, BlobStoreError, PlaceholderCard, CardNotFound) as e:
                ctx.failed_ids.add(entry.id)
                ctx.report.failures.append(f"push {entry.id}: {e}")
                logger.warning(f"Push of card {entry.id} in {ctx.key} failed: {e}")

        await self._push_manifest(ctx, entries)

    async def _push_delete(self, ctx: _PassContext, entry: ManifestEntry) -> None:
        path = ctx.key.remote_path(ctx.user_id, CARDS_DIR, f"{entry.id}.json")
        await self._remote_delete(path)
        ctx.watermark.mark_remote_deleted(entry.id, entry.last_modified, self._clock.now())
        ctx.report.deleted_remote += 1
        logger.debug(f"Deleted remote card {entry.id} of {ctx.key}")

    async def _push_card(self, ctx: _PassContext, entry: ManifestEntry) -> None:
        try:
            await self._local(
                self._cards.read, ctx.deck_dir, entry.id, self._fallback_dirs(ctx.key)
            )
        except (PlaceholderCard, CardNotFound) as e:
            # Never upload a placeholder; the remote copy is the last good one
            await self._recover_from_remote(ctx, entry, e)
            return

        data = await self._local(self._cards.read_bytes, ctx.deck_dir, entry.id)
        path = ctx.key.remote_path(ctx.user_id, CARDS_DIR, f"{entry.id}.json")
        await self._remote_put(path, data)
        ctx.watermark.mark_synced(entry.id, entry.last_modified)
        ctx.report.pushed += 1
        logger.debug(f"Pushed card {entry.id} of {ctx.key}")

    async def _recover_from_remote(
        self, ctx: _PassContext, entry: ManifestEntry, cause: Exception
    ) -> None:
        path = ctx.key.remote_path(ctx.user_id, CARDS_DIR, f"{entry.id}.json")
        data = await self._remote_get(path)
        if data is None or self._cards.is_placeholder(data, entry.id):
            raise PlaceholderCard(entry.id, f"no valid copy locally or remotely ({cause})")
        await self._local(self._cards.write_bytes, ctx.deck_dir, entry.id, data)
        ctx.watermark.mark_synced(entry.id, entry.last_modified)
        ctx.report.recovered += 1
        logger.warning(f"Card {entry.id} of {ctx.key} restored from remote copy")

    async def _push_manifest(self, ctx: _PassContext, entries: list[ManifestEntry]) -> None:
        # Entries that failed keep their remote version so other devices never
        # see a timestamp whose card content was not uploaded.
        upload: list[ManifestEntry] = []
        for entry in entries:
            if entry.id in ctx.failed_ids:
                remote = ctx.remote_entries.get(entry.id)
                if remote is not None:
                    upload.append(remote)
                continue
            upload.append(entry)

        data = serialize_manifest(upload).encode("utf-8")
        if data == ctx.remote_manifest:
            return
        path = ctx.key.remote_path(ctx.user_id, MANIFEST_FILE)
        try:
            await self._remote_put(path, data)
        except (RecoverableSyncError, BlobStoreError) as e:
            ctx.report.failures.append(f"manifest upload: {e}")
            logger.warning(f"Manifest upload for {ctx.key} failed: {e}")

    # --- results ---

    async def _sync_results(self, ctx: _PassContext) -> None:
        """Bring result.txt in line with the remote copy.

        The watermark holds the digest of the log both sides had after the
        last results sync. A side whose log still matches it has nothing
        new, so it adopts the other side verbatim; only when both moved on
        are remote lines merged per card and the result uploaded.
        """
        path = ctx.key.remote_path(ctx.user_id, RESULT_FILE)
        try:
            remote = await self._remote_get(path)
            remote_lines = []
            if remote:
                text = remote.decode("utf-8", errors="replace")
                remote_lines = [line for line, _ in parse_text(text, source=path)]
            local_lines = await self._local(self._results.read_lines, ctx.deck_dir)

            if local_lines == remote_lines:
                ctx.watermark.results_digest = lines_digest(local_lines)
                return

            base = ctx.watermark.results_digest
            if remote_lines and lines_digest(local_lines) == base:
                adopted = await self._local(
                    self._results.replace_lines, ctx.deck_dir, remote_lines, local_lines
                )
                if adopted:
                    ctx.report.results_merged = len(set(remote_lines) - set(local_lines))
                    ctx.watermark.results_digest = lines_digest(remote_lines)
                    return
                logger.info(f"Result log of {ctx.key} changed during sync, merging instead")

            if remote_lines and lines_digest(remote_lines) != base:
                ctx.report.results_merged = await self._local(
                    self._results.merge_lines, ctx.deck_dir, remote_lines
                )
            merged = await self._local(self._results.read_lines, ctx.deck_dir)
            if merged != remote_lines:
                await self._remote_put(path, encode_lines(merged))
            ctx.watermark.results_digest = lines_digest(merged)
        except (RecoverableSyncError, BlobStoreError) as e:
            ctx.report.failures.append(f"results: {e}")
            logger.warning(f"Result log sync for {ctx.key} failed: {e}")

    # --- tombstone purge ---

    async def _purge_tombstones(self, ctx: _PassContext) -> int:
        now = self._clock.now()
        entries = await self._local(self._manifest.load, ctx.deck_dir)
        expired: set[str] = set()
        for entry in entries:
            confirmed_at = ctx.watermark.remote_deleted.get(entry.id)
            if entry.tombstone and confirmed_at is not None:
                if now - confirmed_at >= self._tombstone_retention:
                    expired.add(entry.id)
        if not expired:
            return 0
        purged = await self._local(self._manifest.purge, ctx.deck_dir, expired)
        ctx.watermark.forget(expired)
        logger.info(f"Purged {purged} tombstone(s) from {ctx.key}")
        return purged

    # --- local file calls ---

    async def _local(self, operation: Callable[..., T], *args) -> T:
        """Run a blocking file operation in a worker thread.

        A cancelled pass still waits for the thread to return before the
        cancellation propagates, so the deck lock is held for the whole write.
        """
        task = asyncio.ensure_future(asyncio.to_thread(operation, *args))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                logger.warning(
                    f"{getattr(operation, '__name__', operation)} failed after cancellation: "
                    f"{task.exception()}"
                )
            raise

    # --- remote calls ---

    async def _remote(self, description: str, operation: Callable[..., Awaitable[T]], *args) -> T:
        async def _do() -> T:
            try:
                return await operation(*args)
            except (RecoverableSyncError, BlobStoreError):
                raise
            except Exception as e:
                if isinstance(e, TimeoutError):
                    raise SyncTimeout(f"{description}: {e}") from e
                # Wrap connection errors as transient for retry
                if is_transient_error(e):
                    raise NetworkUnavailable(f"{description}: {e}") from e
                raise BlobStoreError(description, message=str(e)) from e

        return await retry_operation(
            _do,
            policy=self._retry_policy,
            retry_on=(RecoverableSyncError,),
            on_retry=lambda attempt, exc: logger.info(f"Retry {attempt} for {description}: {exc}"),
        )

    async def _remote_get(self, path: str) -> bytes | None:
        return await self._remote(f"GET {path}", self._blob_store.get, path)

    async def _remote_put(self, path: str, data: bytes) -> None:
        await self._remote(f"PUT {path}", self._blob_store.put, path, data)

    async def _remote_delete(self, path: str) -> None:
        await self._remote(f"DELETE {path}", self._blob_store.delete, path)
