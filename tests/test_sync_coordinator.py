"""Tests for deck synchronization against the in-memory blob store."""

import asyncio
import threading
from datetime import timedelta

import pytest

from decksync.adapters.http_network_monitor import StaticNetworkMonitor
from decksync.adapters.memory_blob_store import MemoryBlobStore
from decksync.composition import build_container
from decksync.domain.services.auth_session import AuthSession
from decksync.domain.value_objects.deck_key import DeckKey
from decksync.domain.value_objects.deck_sync_state import DeckSyncState
from decksync.domain.value_objects.review import ReviewOutcome
from decksync.domain.value_objects.sync_reason import SyncReason
from decksync.infrastructure.retry import RetryPolicy

from .conftest import USER, no_sleep


def _card(card_id: str, front: str = "front text") -> dict:
    return {"id": card_id, "front": front, "back": "back text"}


def _seed(container, deck, card_id, front="front text"):
    deck_dir = deck.local_dir(container.data_dir)
    container.card_repository.write(deck_dir, card_id, _card(card_id, front))
    return container.manifest_store.upsert(deck_dir, card_id)


def _card_path(deck: DeckKey, card_id: str) -> str:
    return deck.remote_path(USER, "cards", f"{card_id}.json")


def _manifest_path(deck: DeckKey) -> str:
    return deck.remote_path(USER, "cards.txt")


class TestPushAndPull:
    async def test_first_sync_uploads_everything_and_clears_queue(self, container, deck, blob_store):
        _seed(container, deck, "c1")
        _seed(container, deck, "c2")

        report = await container.coordinator.request_sync(deck)

        assert report.complete
        assert report.pushed == 2
        assert report.active_count == 2
        remote = blob_store.snapshot()
        assert _card_path(deck, "c1") in remote
        assert remote[_manifest_path(deck)].decode().splitlines()[0] == "2"
        assert await container.queue.count() == 0
        assert container.coordinator.get_state(deck) is DeckSyncState.IDLE

    async def test_unchanged_cards_are_not_uploaded_again(self, container, deck, blob_store):
        _seed(container, deck, "c1")
        await container.coordinator.sync_deck(deck)
        blob_store.calls.clear()

        report = await container.coordinator.sync_deck(deck)

        assert report.complete
        assert report.pushed == 0
        assert blob_store.calls_for("put") == []

    async def test_pull_downloads_missing_cards(self, container, deck, blob_store, clock):
        remote_card = b'{"id": "r1", "front": "from another device"}'
        blob_store._objects[_card_path(deck, "r1")] = remote_card
        blob_store._objects[_manifest_path(deck)] = b"1\nr1,2024-03-01 08:00:00\n"

        report = await container.coordinator.sync_deck(deck)

        assert report.pulled == 1
        deck_dir = deck.local_dir(container.data_dir)
        assert container.card_repository.read(deck_dir, "r1")["front"] == "from another device"
        assert container.manifest_store.active_ids(deck_dir) == ["r1"]

    async def test_remote_newer_wins_and_logs_conflict(self, container, deck, blob_store, clock):
        _seed(container, deck, "c1", front="local edit")
        blob_store._objects[_card_path(deck, "c1")] = b'{"id": "c1", "front": "remote edit"}'
        blob_store._objects[_manifest_path(deck)] = b"1\nc1,2024-03-01 10:00:00\n"

        report = await container.coordinator.sync_deck(deck)

        assert report.pulled == 1
        assert [c.card_id for c in report.conflicts] == ["c1"]
        deck_dir = deck.local_dir(container.data_dir)
        assert container.card_repository.read(deck_dir, "c1")["front"] == "remote edit"
        # Local side lost, so nothing of c1 is pushed
        assert _card_path(deck, "c1") not in blob_store.calls_for("put")

    async def test_equal_timestamps_keep_local_without_transfer(self, container, deck, blob_store):
        _seed(container, deck, "c1")
        await container.coordinator.sync_deck(deck)
        blob_store.calls.clear()

        report = await container.coordinator.sync_deck(deck)

        assert report.pulled == 0
        assert report.conflicts == []
        assert _card_path(deck, "c1") not in blob_store.calls_for("get")

    async def test_timestamp_tie_tombstone_wins(self, container, deck, blob_store):
        entry = _seed(container, deck, "c1")
        stamp = entry.last_modified.strftime("%Y-%m-%d %H:%M:%S")
        blob_store._objects[_manifest_path(deck)] = f"0\nc1,{stamp},deleted\n".encode()

        report = await container.coordinator.sync_deck(deck)

        assert report.deleted_local == 1
        assert "tie" in report.conflicts[0].resolution
        deck_dir = deck.local_dir(container.data_dir)
        assert container.manifest_store.active_ids(deck_dir) == []
        assert not container.card_repository.exists(deck_dir, "c1")

    async def test_remote_tombstone_for_unknown_card_is_ignored(self, container, deck, blob_store):
        blob_store._objects[_manifest_path(deck)] = b"0\nghost,2024-03-01 08:00:00,deleted\n"

        report = await container.coordinator.sync_deck(deck)

        assert report.complete
        deck_dir = deck.local_dir(container.data_dir)
        assert container.manifest_store.get(deck_dir, "ghost") is None

    async def test_placeholder_is_recovered_from_remote_not_uploaded(
        self, container, deck, blob_store
    ):
        _seed(container, deck, "c1", front="good copy")
        await container.coordinator.sync_deck(deck)
        deck_dir = deck.local_dir(container.data_dir)
        container.card_repository.card_path(deck_dir, "c1").write_bytes(b"")
        # A fresh edit timestamp makes the card due for upload
        container.manifest_store.upsert(deck_dir, "c1")
        blob_store.calls.clear()

        report = await container.coordinator.sync_deck(deck)

        assert report.recovered == 1
        assert report.pushed == 0
        assert _card_path(deck, "c1") not in blob_store.calls_for("put")
        assert container.card_repository.read(deck_dir, "c1")["front"] == "good copy"

    async def test_older_remote_answer_does_not_override_local(
        self, container, deck, blob_store, clock
    ):
        _seed(container, deck, "c1")
        deck_dir = deck.local_dir(container.data_dir)
        container.result_log.append(
            deck_dir, ReviewOutcome("c1", True, clock.now() + timedelta(minutes=10))
        )
        results_path = deck.remote_path(USER, "result.txt")
        blob_store._objects[results_path] = "c1|不正解|2024/03/01 08:01:00\n".encode()

        report = await container.coordinator.sync_deck(deck)

        assert report.complete
        assert report.results_merged == 0
        state = container.result_log.state_for(deck_dir, "c1")
        assert state.last_result is True
        assert state.next_review_at == clock.now() + timedelta(minutes=10)
        uploaded = blob_store.snapshot()[results_path].decode().splitlines()
        assert uploaded == ["c1|正解|2024/03/01 09:10:00"]

    async def test_newer_remote_answers_are_merged_after_local(
        self, container, deck, blob_store, clock
    ):
        _seed(container, deck, "c1")
        deck_dir = deck.local_dir(container.data_dir)
        container.result_log.append(
            deck_dir, ReviewOutcome("c1", False, clock.now() + timedelta(minutes=1))
        )
        results_path = deck.remote_path(USER, "result.txt")
        blob_store._objects[results_path] = (
            "c2|正解|2024/03/02 09:00:00\nc1|正解|2024/03/02 09:00:00\n".encode()
        )

        report = await container.coordinator.sync_deck(deck)

        assert report.results_merged == 2
        assert container.result_log.state_for(deck_dir, "c1").last_result is True
        assert container.result_log.state_for(deck_dir, "c2").was_attempted
        uploaded = blob_store.snapshot()[results_path].decode().splitlines()
        assert uploaded == container.result_log.read_lines(deck_dir)


class TestDeleteAndRetry:
    @pytest.fixture
    def single_attempt(self, tmp_path, data_dir, blob_store, network, auth, clock):
        # One attempt per call, 5s backoff for the deck
        return build_container(
            data_dir=data_dir,
            queue_db_path=tmp_path / "unsynced.db",
            blob_store=blob_store,
            network=network,
            auth=auth,
            clock=clock,
            retry_policy=RetryPolicy(max_attempts=1, initial_wait=5, max_wait=5, jitter=0),
            drain_delay=0,
            sleep=no_sleep,
        )

    async def test_failed_delete_keeps_deck_queued_and_repush_is_idempotent(
        self, single_attempt, deck, blob_store, clock
    ):
        container = single_attempt
        deck_dir = deck.local_dir(container.data_dir)
        _seed(container, deck, "c1", front="v1")
        _seed(container, deck, "c2")
        await container.coordinator.request_sync(deck)

        clock.advance(minutes=1)
        container.card_repository.write(deck_dir, "c1", _card("c1", "v2"))
        container.manifest_store.upsert(deck_dir, "c1")
        container.manifest_store.tombstone(deck_dir, "c2")
        container.card_repository.delete(deck_dir, "c2")
        await container.queue.enqueue_deck(deck, SyncReason.MANUAL)
        blob_store.calls.clear()
        blob_store.fail("delete", _card_path(deck, "c2"))

        report = await container.coordinator.sync_deck(deck)

        assert not report.complete
        assert report.pushed == 1
        assert report.deleted_remote == 0
        assert blob_store.calls_for("delete") == [_card_path(deck, "c2")]
        assert blob_store.calls_for("put").count(_card_path(deck, "c1")) == 1
        entry = await container.queue.get(deck.note_name, deck.sub_folder)
        assert entry.reason is SyncReason.ERROR
        assert entry.retry_count == 1
        assert container.coordinator.get_state(deck) is DeckSyncState.BACKOFF
        # The remote manifest keeps c2 live until its delete lands
        remote_manifest = blob_store.snapshot()[_manifest_path(deck)].decode()
        assert "c2," in remote_manifest and "deleted" not in remote_manifest

        clock.advance(seconds=10)
        assert container.coordinator.get_state(deck) is DeckSyncState.IDLE
        result = await container.coordinator.drain_queue()

        assert result.succeeded == [deck]
        assert blob_store.calls_for("delete") == [_card_path(deck, "c2"), _card_path(deck, "c2")]
        # c1 was not uploaded a second time
        assert blob_store.calls_for("put").count(_card_path(deck, "c1")) == 1
        assert _card_path(deck, "c2") not in blob_store.snapshot()
        assert await container.queue.count() == 0

    async def test_backoff_hides_deck_from_drain(self, single_attempt, deck, blob_store, clock):
        container = single_attempt
        _seed(container, deck, "c1")
        await container.queue.enqueue_deck(deck, SyncReason.MANUAL)
        blob_store.fail("put", _card_path(deck, "c1"))

        first = await container.coordinator.drain_queue()
        assert first.failed == [deck]

        second = await container.coordinator.drain_queue()
        assert second.attempted == 0

    async def test_tombstone_purged_after_confirmed_delete_and_retention(
        self, container, deck, clock
    ):
        deck_dir = deck.local_dir(container.data_dir)
        _seed(container, deck, "c1")
        _seed(container, deck, "c2")
        await container.coordinator.sync_deck(deck)
        clock.advance(minutes=1)
        container.manifest_store.tombstone(deck_dir, "c2")
        container.card_repository.delete(deck_dir, "c2")

        report = await container.coordinator.sync_deck(deck)
        assert report.deleted_remote == 1
        assert report.purged == 0
        assert container.manifest_store.get(deck_dir, "c2").tombstone

        clock.advance(days=31)
        report = await container.coordinator.sync_deck(deck)
        assert report.purged == 1
        assert container.manifest_store.get(deck_dir, "c2") is None


class TestAvailability:
    async def test_offline_sync_is_queued_not_attempted(self, container, deck, network, blob_store):
        await network.set_available(False)
        _seed(container, deck, "c1")

        report = await container.coordinator.sync_deck(deck)

        assert report.skipped_reason == "offline"
        assert blob_store.calls == []
        entry = await container.queue.get(deck.note_name, deck.sub_folder)
        assert entry.reason is SyncReason.OFFLINE

    async def test_logged_out_request_returns_none_and_queues(self, container, deck, auth):
        await auth.logout()
        assert await container.coordinator.request_sync(deck) is None
        assert await container.queue.count() == 1

    async def test_pass_timeout_backs_off(self, tmp_path, data_dir, network, auth, clock, deck):
        class HangingStore(MemoryBlobStore):
            async def get(self, path: str) -> bytes | None:
                await asyncio.sleep(3600)
                return None

        container = build_container(
            data_dir=data_dir,
            queue_db_path=tmp_path / "unsynced.db",
            blob_store=HangingStore(),
            network=network,
            auth=auth,
            clock=clock,
            retry_policy=RetryPolicy(max_attempts=1, initial_wait=5, max_wait=5, jitter=0),
            sync_timeout=0.05,
            sleep=no_sleep,
        )

        report = await container.coordinator.sync_deck(deck)

        assert "exceeded" in report.error
        assert report.state is DeckSyncState.BACKOFF
        entry = await container.queue.get(deck.note_name, deck.sub_folder)
        assert entry.reason is SyncReason.ERROR


class TestDrain:
    async def test_reconnect_drains_in_enqueue_order_once_per_deck(
        self, container, network, blob_store
    ):
        decks = [DeckKey("alpha"), DeckKey("beta", "lang"), DeckKey("gamma")]
        await network.set_available(False)
        for deck in decks:
            _seed(container, deck, "c1")
            await container.coordinator.mark_dirty(deck)

        await network.set_available(True)
        # A second trigger right away joins the same drain
        again = await container.coordinator.drain_queue()
        await container.triggers.last_drain

        manifest_gets = [p for p in blob_store.calls_for("get") if p.endswith("cards.txt")]
        assert manifest_gets == [_manifest_path(d) for d in decks]
        assert again.succeeded == decks
        assert await container.queue.count() == 0

    async def test_concurrent_sync_requests_share_one_pass(self, container, deck, blob_store):
        _seed(container, deck, "c1")

        first, second = await asyncio.gather(
            container.coordinator.sync_deck(deck), container.coordinator.sync_deck(deck)
        )

        assert first is second
        assert blob_store.calls_for("get").count(_manifest_path(deck)) == 1

    async def test_drain_stops_when_going_offline(self, container, network, blob_store):
        decks = [DeckKey("alpha"), DeckKey("beta")]
        for deck in decks:
            await container.queue.enqueue_deck(deck, SyncReason.OFFLINE)
        await network.set_available(False)

        result = await container.coordinator.drain_queue()

        assert result.stopped_early
        assert result.attempted == 0
        assert await container.queue.count() == 2

    async def test_login_triggers_drain(self, container, auth, deck, blob_store):
        await auth.logout()
        _seed(container, deck, "c1")
        await container.coordinator.mark_dirty(deck)

        await auth.login(USER)
        await container.triggers.last_drain

        assert await container.queue.count() == 0
        assert _card_path(deck, "c1") in blob_store.snapshot()


class TestTwoDevices:
    """Two devices of one user sharing the same remote store."""

    @pytest.fixture
    def devices(self, tmp_path, blob_store, clock, fast_retry):
        def device(name: str):
            data_dir = tmp_path / name
            data_dir.mkdir()
            return build_container(
                data_dir=data_dir,
                queue_db_path=tmp_path / f"{name}.db",
                blob_store=blob_store,
                network=StaticNetworkMonitor(available=True),
                auth=AuthSession(USER),
                clock=clock,
                retry_policy=fast_retry,
                drain_delay=0,
                sleep=no_sleep,
            )

        return device("phone"), device("laptop")

    @pytest.fixture
    async def shared_deck(self, devices, deck):
        phone, laptop = devices
        _seed(phone, deck, "c1")
        _seed(phone, deck, "c2")
        await phone.coordinator.sync_deck(deck)
        await laptop.coordinator.sync_deck(deck)
        return deck

    @staticmethod
    async def _sync_both(devices, deck) -> None:
        for device in devices:
            report = await device.coordinator.sync_deck(deck)
            assert report.complete

    async def test_latest_answer_wins_on_both_devices(
        self, devices, shared_deck, blob_store, clock
    ):
        phone, laptop = devices
        deck = shared_deck
        phone_dir = deck.local_dir(phone.data_dir)
        laptop_dir = deck.local_dir(laptop.data_dir)
        phone.result_log.append(
            phone_dir, ReviewOutcome("c1", False, clock.now() + timedelta(minutes=1))
        )
        laptop.result_log.append(
            laptop_dir, ReviewOutcome("c1", True, clock.now() + timedelta(days=1))
        )

        await self._sync_both(devices, deck)
        blob_store.calls.clear()
        await self._sync_both(devices, deck)

        phone_state = phone.result_log.state_for(phone_dir, "c1")
        assert phone_state == laptop.result_log.state_for(laptop_dir, "c1")
        assert phone_state.last_result is True
        assert phone_state.next_review_at == clock.now() + timedelta(days=1)
        assert deck.remote_path(USER, "result.txt") not in blob_store.calls_for("put")

    async def test_answers_to_different_cards_end_up_on_both_devices(
        self, devices, shared_deck, blob_store, clock
    ):
        phone, laptop = devices
        deck = shared_deck
        phone_dir = deck.local_dir(phone.data_dir)
        laptop_dir = deck.local_dir(laptop.data_dir)
        phone.result_log.append(
            phone_dir, ReviewOutcome("c1", True, clock.now() + timedelta(days=1))
        )
        laptop.result_log.append(
            laptop_dir, ReviewOutcome("c2", False, clock.now() + timedelta(minutes=1))
        )

        await self._sync_both(devices, deck)
        await self._sync_both(devices, deck)
        blob_store.calls.clear()
        await self._sync_both(devices, deck)

        assert phone.result_log.read_lines(phone_dir) == laptop.result_log.read_lines(laptop_dir)
        assert phone.result_log.fold_all(phone_dir) == laptop.result_log.fold_all(laptop_dir)
        assert set(phone.result_log.fold_all(phone_dir)) == {"c1", "c2"}
        assert deck.remote_path(USER, "result.txt") not in blob_store.calls_for("put")

    async def test_local_answer_during_sync_is_not_lost(
        self, devices, shared_deck, blob_store, clock
    ):
        phone, laptop = devices
        deck = shared_deck
        phone_dir = deck.local_dir(phone.data_dir)
        laptop_dir = deck.local_dir(laptop.data_dir)
        laptop.result_log.append(
            laptop_dir, ReviewOutcome("c2", True, clock.now() + timedelta(days=1))
        )
        await laptop.coordinator.sync_deck(deck)

        # an answer lands on the phone after the pass has read the local log
        original = phone.result_log.replace_lines

        def answer_then_replace(deck_dir, lines, expected):
            phone.result_log.append(
                deck_dir, ReviewOutcome("c1", False, clock.now() + timedelta(minutes=1))
            )
            return original(deck_dir, lines, expected)

        phone.result_log.replace_lines = answer_then_replace
        await phone.coordinator.sync_deck(deck)

        assert set(phone.result_log.fold_all(phone_dir)) == {"c1", "c2"}
        remote = blob_store.snapshot()[deck.remote_path(USER, "result.txt")].decode()
        assert remote.splitlines() == phone.result_log.read_lines(phone_dir)


async def test_timed_out_pass_holds_deck_lock_until_file_write_returns(
    tmp_path, data_dir, blob_store, network, auth, clock, deck
):
    container = build_container(
        data_dir=data_dir,
        queue_db_path=tmp_path / "unsynced.db",
        blob_store=blob_store,
        network=network,
        auth=auth,
        clock=clock,
        retry_policy=RetryPolicy(max_attempts=1, initial_wait=5, max_wait=5, jitter=0),
        sync_timeout=0.05,
        sleep=no_sleep,
    )
    blob_store._objects[_card_path(deck, "r1")] = b'{"id": "r1", "front": "remote"}'
    blob_store._objects[_manifest_path(deck)] = b"1\nr1,2024-03-01 08:00:00\n"

    entered = threading.Event()
    release = threading.Event()
    original = container.manifest_store.apply

    def slow_apply(deck_dir, entry):
        entered.set()
        release.wait(5)
        return original(deck_dir, entry)

    container.manifest_store.apply = slow_apply
    task = asyncio.create_task(container.coordinator.sync_deck(deck))
    assert await asyncio.to_thread(entered.wait, 5)
    await asyncio.sleep(0.2)

    assert not task.done()
    assert container.deck_locks.is_locked(deck)

    release.set()
    report = await task

    assert "exceeded" in report.error
    assert report.state is DeckSyncState.BACKOFF
    assert not container.deck_locks.is_locked(deck)
    assert container.manifest_store.active_ids(deck.local_dir(data_dir)) == ["r1"]
