"""SQLite-backed queue of decks waiting for remote sync.

Survives restarts. One row per (note_name, sub_folder); a deck stays
queued until a sync pass fully succeeds and removes it.
Uses async-safe operations with threading.
"""

import asyncio
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from decksync.domain.value_objects.deck_key import DeckKey
from decksync.domain.value_objects.sync_reason import SyncReason
from decksync.infrastructure.clock import Clock, SystemClock


@dataclass
class UnsyncedDeckEntry:
    """Deck waiting for sync.

    Attributes:
        note_name: Deck name
        sub_folder: Optional sub-folder (None and "" are the same deck)
        reason: Why the deck is queued
        queued_at: Last time the deck was (re-)enqueued
        retry_count: Consecutive failed sync attempts
        next_attempt_at: Earliest time a drain should pick the deck up again
        last_error: Message of the last failure
    """

    note_name: str
    sub_folder: str | None
    reason: SyncReason
    queued_at: datetime
    retry_count: int = 0
    next_attempt_at: datetime | None = None
    last_error: str | None = None

    @classmethod
    def for_deck(cls, key: DeckKey, reason: SyncReason, queued_at: datetime) -> "UnsyncedDeckEntry":
        return cls(note_name=key.note_name, sub_folder=key.sub_folder, reason=reason, queued_at=queued_at)

    @property
    def key(self) -> DeckKey:
        return DeckKey(self.note_name, self.sub_folder)

    def is_due(self, now: datetime) -> bool:
        return self.next_attempt_at is None or self.next_attempt_at <= now


@dataclass
class SyncStatusSummary:
    """Counts of queued decks by reason."""

    total: int = 0
    manual: int = 0
    offline: int = 0
    error: int = 0
    oldest_queued_at: datetime | None = None
    decks: list[str] = field(default_factory=list)

    @property
    def has_pending(self) -> bool:
        return self.total > 0


class UnsyncedQueue:
    """Durable, de-duplicated queue of decks pending sync.

    Thread-safe async operations using asyncio.Lock and to_thread.
    Order is first-enqueue order: re-enqueueing a queued deck updates its
    reason and timestamp but keeps its position.
    """

    def __init__(self, db_path: str | Path = "unsynced.db", clock: Clock | None = None):
        """Initialize the queue.

        Args:
            db_path: Path to SQLite database file
            clock: Time source for queued_at defaults

        Database tables are created synchronously on construction.
        """
        self._db_path = Path(db_path)
        self._clock = clock or SystemClock()
        self._lock = asyncio.Lock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        """Create SQLite connection with the usual PRAGMAs."""
        conn = sqlite3.connect(self._db_path)
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA temp_store=MEMORY")
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Initialize database schema."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS unsynced_decks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    note_name TEXT NOT NULL,
                    sub_folder TEXT NOT NULL DEFAULT '',
                    reason TEXT NOT NULL CHECK (reason IN ('manual', 'offline', 'error')),
                    queued_at TEXT NOT NULL,
                    retry_count INTEGER NOT NULL DEFAULT 0,
                    next_attempt_at TEXT,
                    last_error TEXT,
                    UNIQUE (note_name, sub_folder)
                )
            """
            )

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> UnsyncedDeckEntry:
        return UnsyncedDeckEntry(
            note_name=row["note_name"],
            sub_folder=row["sub_folder"] or None,
            reason=SyncReason(row["reason"]),
            queued_at=datetime.fromisoformat(row["queued_at"]),
            retry_count=row["retry_count"],
            next_attempt_at=(
                datetime.fromisoformat(row["next_attempt_at"]) if row["next_attempt_at"] else None
            ),
            last_error=row["last_error"],
        )

    async def enqueue(self, entry: UnsyncedDeckEntry) -> None:
        """Add a deck, or update reason/queued_at if it is already queued.

        A manual or offline enqueue makes the deck due immediately and
        resets its failure count.
        """
        async with self._lock:
            await asyncio.to_thread(self._enqueue_sync, entry)

    def _enqueue_sync(self, entry: UnsyncedDeckEntry) -> None:
        """Synchronous enqueue implementation."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO unsynced_decks (
                    note_name, sub_folder, reason, queued_at,
                    retry_count, next_attempt_at, last_error
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(note_name, sub_folder) DO UPDATE SET
                    reason = excluded.reason,
                    queued_at = excluded.queued_at,
                    retry_count = CASE WHEN excluded.reason = 'error'
                        THEN unsynced_decks.retry_count ELSE 0 END,
                    next_attempt_at = CASE WHEN excluded.reason = 'error'
                        THEN excluded.next_attempt_at ELSE NULL END,
                    last_error = CASE WHEN excluded.reason = 'error'
                        THEN excluded.last_error ELSE unsynced_decks.last_error END
                """,
                (
                    entry.note_name,
                    entry.sub_folder or "",
                    str(entry.reason),
                    entry.queued_at.isoformat(),
                    entry.retry_count,
                    entry.next_attempt_at.isoformat() if entry.next_attempt_at else None,
                    entry.last_error,
                ),
            )

    async def enqueue_deck(self, key: DeckKey, reason: SyncReason) -> UnsyncedDeckEntry:
        """Convenience wrapper: enqueue a deck key stamped with the current time."""
        entry = UnsyncedDeckEntry.for_deck(key, reason, self._clock.now())
        await self.enqueue(entry)
        return entry

    async def dequeue_all_due(self, now: datetime | None = None) -> list[UnsyncedDeckEntry]:
        """Entries ready for a sync attempt, in enqueue order.

        Entries are not removed here; a successful sync calls remove().
        """
        now = now or self._clock.now()
        async with self._lock:
            return await asyncio.to_thread(self._dequeue_all_due_sync, now)

    def _dequeue_all_due_sync(self, now: datetime) -> list[UnsyncedDeckEntry]:
        """Synchronous due-entry query."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM unsynced_decks
                WHERE next_attempt_at IS NULL OR next_attempt_at <= ?
                ORDER BY id ASC
                """,
                (now.isoformat(),),
            ).fetchall()
            return [self._row_to_entry(row) for row in rows]

    async def list_all(self) -> list[UnsyncedDeckEntry]:
        """Every queued deck in enqueue order, due or not."""
        async with self._lock:
            return await asyncio.to_thread(self._list_all_sync)

    def _list_all_sync(self) -> list[UnsyncedDeckEntry]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM unsynced_decks ORDER BY id ASC").fetchall()
            return [self._row_to_entry(row) for row in rows]

    async def get(self, note_name: str, sub_folder: str | None = None) -> UnsyncedDeckEntry | None:
        async with self._lock:
            return await asyncio.to_thread(self._get_sync, note_name, sub_folder or "")

    def _get_sync(self, note_name: str, sub_folder: str) -> UnsyncedDeckEntry | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM unsynced_decks WHERE note_name = ? AND sub_folder = ?",
                (note_name, sub_folder),
            ).fetchone()
            return self._row_to_entry(row) if row else None

    async def remove(self, note_name: str, sub_folder: str | None = None) -> bool:
        """Drop a deck from the queue after a successful sync.

        Returns:
            True if an entry was removed
        """
        async with self._lock:
            return await asyncio.to_thread(self._remove_sync, note_name, sub_folder or "")

    def _remove_sync(self, note_name: str, sub_folder: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM unsynced_decks WHERE note_name = ? AND sub_folder = ?",
                (note_name, sub_folder),
            )
            return cursor.rowcount > 0

    async def update_reason(
        self, note_name: str, sub_folder: str | None, reason: SyncReason
    ) -> bool:
        """Change the reason of a queued deck.

        Returns:
            True if the deck was queued
        """
        async with self._lock:
            return await asyncio.to_thread(
                self._update_reason_sync, note_name, sub_folder or "", reason
            )

    def _update_reason_sync(self, note_name: str, sub_folder: str, reason: SyncReason) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE unsynced_decks SET reason = ? WHERE note_name = ? AND sub_folder = ?",
                (str(reason), note_name, sub_folder),
            )
            return cursor.rowcount > 0

    async def record_failure(
        self,
        key: DeckKey,
        error: str,
        next_attempt_at: datetime | None,
    ) -> UnsyncedDeckEntry:
        """Queue (or keep) a deck with reason=error and bump its failure count.

        Args:
            key: Deck that failed
            error: Failure message
            next_attempt_at: Earliest retry time (None means retry on next drain)

        Returns:
            The updated entry
        """
        async with self._lock:
            return await asyncio.to_thread(
                self._record_failure_sync, key, error, next_attempt_at, self._clock.now()
            )

    def _record_failure_sync(
        self,
        key: DeckKey,
        error: str,
        next_attempt_at: datetime | None,
        now: datetime,
    ) -> UnsyncedDeckEntry:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO unsynced_decks (
                    note_name, sub_folder, reason, queued_at,
                    retry_count, next_attempt_at, last_error
                )
                VALUES (?, ?, 'error', ?, 1, ?, ?)
                ON CONFLICT(note_name, sub_folder) DO UPDATE SET
                    reason = 'error',
                    retry_count = unsynced_decks.retry_count + 1,
                    next_attempt_at = excluded.next_attempt_at,
                    last_error = excluded.last_error
                """,
                (
                    key.note_name,
                    key.storage_sub_folder,
                    now.isoformat(),
                    next_attempt_at.isoformat() if next_attempt_at else None,
                    error,
                ),
            )
            row = conn.execute(
                "SELECT * FROM unsynced_decks WHERE note_name = ? AND sub_folder = ?",
                (key.note_name, key.storage_sub_folder),
            ).fetchone()
            return self._row_to_entry(row)

    async def count(self) -> int:
        async with self._lock:
            return await asyncio.to_thread(self._count_sync)

    def _count_sync(self) -> int:
        with self._connect() as conn:
            result = conn.execute("SELECT COUNT(*) FROM unsynced_decks").fetchone()
            return result[0] if result else 0

    async def clear(self) -> int:
        """Remove every entry (e.g. on logout).

        Returns:
            Number of removed entries
        """
        async with self._lock:
            return await asyncio.to_thread(self._clear_sync)

    def _clear_sync(self) -> int:
        with self._connect() as conn:
            return conn.execute("DELETE FROM unsynced_decks").rowcount

    async def get_sync_status(self) -> SyncStatusSummary:
        """Summary of what is waiting, for status displays."""
        entries = await self.list_all()
        summary = SyncStatusSummary(total=len(entries))
        for entry in entries:
            setattr(summary, str(entry.reason), getattr(summary, str(entry.reason)) + 1)
            summary.decks.append(str(entry.key))
            if summary.oldest_queued_at is None or entry.queued_at < summary.oldest_queued_at:
                summary.oldest_queued_at = entry.queued_at
        return summary
