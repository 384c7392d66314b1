"""Tests for the durable unsynced-deck queue."""

from datetime import timedelta

import pytest

from decksync.domain.value_objects.deck_key import DeckKey
from decksync.domain.value_objects.sync_reason import SyncReason
from decksync.infrastructure.unsynced_queue import UnsyncedQueue

A = DeckKey("alpha")
B = DeckKey("beta", "lang")
C = DeckKey("gamma")


@pytest.fixture
def queue(tmp_path, clock):
    return UnsyncedQueue(tmp_path / "unsynced.db", clock=clock)


async def test_enqueue_is_deduplicated_and_keeps_latest_reason(queue, clock):
    await queue.enqueue_deck(A, SyncReason.OFFLINE)
    clock.advance(seconds=5)
    await queue.enqueue_deck(A, SyncReason.MANUAL)

    entries = await queue.list_all()
    assert len(entries) == 1
    assert entries[0].reason is SyncReason.MANUAL
    assert entries[0].queued_at == clock.now()


async def test_order_is_first_enqueue_order(queue):
    await queue.enqueue_deck(A, SyncReason.MANUAL)
    await queue.enqueue_deck(B, SyncReason.OFFLINE)
    await queue.enqueue_deck(C, SyncReason.MANUAL)
    # Re-enqueueing does not move a deck to the back
    await queue.enqueue_deck(A, SyncReason.OFFLINE)

    assert [e.key for e in await queue.dequeue_all_due()] == [A, B, C]


async def test_dequeue_does_not_remove(queue):
    await queue.enqueue_deck(A, SyncReason.MANUAL)
    await queue.dequeue_all_due()
    assert await queue.count() == 1

    assert await queue.remove("alpha") is True
    assert await queue.remove("alpha") is False
    assert await queue.count() == 0


async def test_empty_and_missing_sub_folder_are_the_same_deck(queue):
    await queue.enqueue_deck(DeckKey("alpha", ""), SyncReason.MANUAL)
    await queue.enqueue_deck(DeckKey("alpha"), SyncReason.OFFLINE)
    assert await queue.count() == 1
    entry = await queue.get("alpha", "")
    assert entry.sub_folder is None


async def test_record_failure_counts_and_delays(queue, clock):
    await queue.enqueue_deck(B, SyncReason.MANUAL)
    retry_at = clock.now() + timedelta(seconds=30)

    entry = await queue.record_failure(B, "remote delete failed", retry_at)
    assert entry.reason is SyncReason.ERROR
    assert entry.retry_count == 1
    assert entry.last_error == "remote delete failed"

    entry = await queue.record_failure(B, "again", retry_at)
    assert entry.retry_count == 2

    # Not due until the backoff elapses
    assert await queue.dequeue_all_due(clock.now()) == []
    due = await queue.dequeue_all_due(retry_at)
    assert [e.key for e in due] == [B]


async def test_record_failure_on_unqueued_deck_inserts(queue):
    entry = await queue.record_failure(C, "boom", None)
    assert entry.retry_count == 1
    assert [e.key for e in await queue.dequeue_all_due()] == [C]


async def test_manual_enqueue_resets_backoff(queue, clock):
    await queue.record_failure(A, "boom", clock.now() + timedelta(hours=1))
    await queue.enqueue_deck(A, SyncReason.MANUAL)

    entry = await queue.get("alpha")
    assert entry.retry_count == 0
    assert entry.next_attempt_at is None
    assert entry.is_due(clock.now())


async def test_update_reason(queue):
    await queue.enqueue_deck(A, SyncReason.MANUAL)
    assert await queue.update_reason("alpha", None, SyncReason.OFFLINE) is True
    assert (await queue.get("alpha")).reason is SyncReason.OFFLINE
    assert await queue.update_reason("nope", None, SyncReason.OFFLINE) is False


async def test_persists_across_instances(tmp_path, clock):
    db_path = tmp_path / "unsynced.db"
    first = UnsyncedQueue(db_path, clock=clock)
    await first.enqueue_deck(A, SyncReason.OFFLINE)
    await first.enqueue_deck(B, SyncReason.MANUAL)

    second = UnsyncedQueue(db_path, clock=clock)
    assert [e.key for e in await second.list_all()] == [A, B]


async def test_sync_status_summary(queue):
    await queue.enqueue_deck(A, SyncReason.MANUAL)
    await queue.enqueue_deck(B, SyncReason.OFFLINE)
    await queue.record_failure(C, "boom", None)

    status = await queue.get_sync_status()
    assert status.has_pending
    assert (status.total, status.manual, status.offline, status.error) == (3, 1, 1, 1)
    assert status.decks == ["alpha", "lang/beta", "gamma"]

    assert await queue.clear() == 3
    assert not (await queue.get_sync_status()).has_pending
