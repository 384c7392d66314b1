"""Tests for network monitors, the auth session and drain triggers."""

import httpx
import pytest

from decksync.adapters.http_network_monitor import HttpNetworkMonitor, StaticNetworkMonitor
from decksync.domain.services.auth_session import AuthSession
from decksync.domain.value_objects.deck_key import DeckKey
from decksync.domain.value_objects.network_state import NetworkChangeType
from decksync.domain.value_objects.sync_reason import SyncReason


class TestStaticNetworkMonitor:
    async def test_publishes_transitions(self):
        monitor = StaticNetworkMonitor(available=False)
        events = []

        async def listener(event):
            events.append(event)

        monitor.subscribe(listener)
        event = await monitor.set_available(True)

        assert monitor.is_network_available()
        assert event.came_online
        assert event.change_type is NetworkChangeType.MANUAL
        assert events == [event]

    async def test_failing_listener_does_not_block_others(self):
        monitor = StaticNetworkMonitor(available=True)
        seen = []

        async def broken(event):
            raise RuntimeError("listener bug")

        async def listener(event):
            seen.append(event.went_offline)

        monitor.subscribe(broken)
        monitor.subscribe(listener)
        await monitor.set_available(False)
        assert seen == [True]


class TestHttpNetworkMonitor:
    def _monitor(self, statuses: list) -> HttpNetworkMonitor:
        responses = iter(statuses)

        def handler(request):
            status = next(responses)
            if status is None:
                raise httpx.ConnectError("unreachable", request=request)
            return httpx.Response(status)

        return HttpNetworkMonitor(
            "https://probe.example.com/",
            failure_threshold=2,
            transport=httpx.MockTransport(handler),
        )

    async def test_probe_status(self):
        monitor = self._monitor([204, 404, 503, None])
        assert await monitor.probe() is True
        # Any answer below 500 means the network is up
        assert await monitor.probe() is True
        assert await monitor.probe() is False
        assert await monitor.probe() is False
        await monitor.close()

    async def test_goes_offline_after_consecutive_failures(self):
        monitor = self._monitor([None, 200, None, None, 200])
        events = []

        async def listener(event):
            events.append(event)

        monitor.subscribe(listener)

        assert await monitor.check_now() is True
        assert await monitor.check_now() is True
        assert await monitor.check_now() is True
        assert await monitor.check_now() is False
        assert await monitor.check_now() is True

        assert [(e.went_offline, e.came_online) for e in events] == [(True, False), (False, True)]
        assert all(e.change_type is NetworkChangeType.PERIODIC_TEST for e in events)
        await monitor.close()


class TestAuthSession:
    async def test_login_logout_events(self):
        auth = AuthSession()
        transitions = []

        async def listener(was_logged_in, is_logged_in):
            transitions.append((was_logged_in, is_logged_in))

        auth.subscribe(listener)
        await auth.login("user-2")
        assert auth.current_user_id() == "user-2"
        await auth.logout()

        assert not auth.is_logged_in
        assert transitions == [(False, True), (True, False)]

    async def test_empty_user_rejected(self):
        with pytest.raises(ValueError):
            await AuthSession().login("  ")


class TestSyncTriggers:
    async def test_going_offline_does_not_drain(self, container, network):
        await container.queue.enqueue_deck(DeckKey("a"), SyncReason.MANUAL)
        await network.set_available(False)
        assert container.triggers.last_drain is None
        assert await container.queue.count() == 1

    async def test_logged_out_reconnect_is_ignored(self, container, network, auth):
        await auth.logout()
        await network.set_available(False)
        await network.set_available(True)
        assert container.triggers.last_drain is None
