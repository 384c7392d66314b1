"""Shared test fixtures."""

from datetime import datetime, timedelta

import pytest

from decksync.adapters.http_network_monitor import StaticNetworkMonitor
from decksync.adapters.memory_blob_store import MemoryBlobStore
from decksync.composition import build_container
from decksync.domain.services.auth_session import AuthSession
from decksync.domain.value_objects.deck_key import DeckKey
from decksync.infrastructure.card_repository import CardRepository
from decksync.infrastructure.manifest_store import ManifestStore
from decksync.infrastructure.result_log import ResultLog
from decksync.infrastructure.retry import RetryPolicy

START = datetime(2024, 3, 1, 9, 0, 0)
USER = "user-1"


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now


async def no_sleep(seconds: float) -> None:
    """Sleep replacement that returns immediately."""
    return None


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "notes"
    path.mkdir()
    return path


@pytest.fixture
def deck():
    return DeckKey("verbs", "japanese")


@pytest.fixture
def deck_dir(data_dir, deck):
    return deck.local_dir(data_dir)


@pytest.fixture
def manifest_store(clock):
    return ManifestStore(clock=clock)


@pytest.fixture
def card_repository():
    return CardRepository()


@pytest.fixture
def result_log():
    return ResultLog()


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def network():
    return StaticNetworkMonitor(available=True)


@pytest.fixture
def auth():
    return AuthSession(USER)


@pytest.fixture
def fast_retry():
    """Retry policy without waits."""
    return RetryPolicy(max_attempts=3, initial_wait=0, max_wait=0, jitter=0)


@pytest.fixture
def container(tmp_path, data_dir, blob_store, network, auth, clock, fast_retry):
    """Fully wired application services over temp storage and an in-memory remote."""
    return build_container(
        data_dir=data_dir,
        queue_db_path=tmp_path / "unsynced.db",
        blob_store=blob_store,
        network=network,
        auth=auth,
        clock=clock,
        retry_policy=fast_retry,
        drain_delay=0,
        sleep=no_sleep,
    )
