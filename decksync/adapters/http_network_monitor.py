"""Network availability monitors."""

import asyncio
import logging

import httpx

from decksync.domain.value_objects.network_state import NetworkChangeType, NetworkStateChanged
from decksync.infrastructure.periodic import PeriodicTask, SleepFn
from decksync.ports.network import NetworkListener

logger = logging.getLogger(__name__)


class _ListenerMixin:
    def __init__(self) -> None:
        self._listeners: list[NetworkListener] = []

    def subscribe(self, listener: NetworkListener) -> None:
        self._listeners.append(listener)

    async def _publish(self, event: NetworkStateChanged) -> None:
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception as e:
                logger.warning(f"Network listener failed: {e}")


class StaticNetworkMonitor(_ListenerMixin):
    """Availability set explicitly (API endpoint, tests, offline mode)."""

    def __init__(self, available: bool = True):
        super().__init__()
        self._available = available

    def is_network_available(self) -> bool:
        return self._available

    async def set_available(
        self, available: bool, change_type: NetworkChangeType = NetworkChangeType.MANUAL
    ) -> NetworkStateChanged:
        event = NetworkStateChanged(
            was_available=self._available, is_available=available, change_type=change_type
        )
        self._available = available
        if event.was_available != event.is_available:
            logger.info(f"Network {'available' if available else 'unavailable'} ({change_type})")
        await self._publish(event)
        return event


class HttpNetworkMonitor(StaticNetworkMonitor):
    """Probes a URL periodically and publishes availability changes.

    Availability drops only after `failure_threshold` consecutive failed
    probes, so one lost request does not flip the app offline.
    """

    def __init__(
        self,
        probe_url: str,
        interval_seconds: float = 30.0,
        timeout: float = 5.0,
        failure_threshold: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        super().__init__(available=True)
        self._probe_url = probe_url
        self._timeout = timeout
        self._failure_threshold = max(1, failure_threshold)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._consecutive_failures = 0
        self._task = PeriodicTask("network-probe", interval_seconds, self.check_now, sleep=sleep)

    async def _get_client(self) -> httpx.AsyncClient:
        """Lazy client initialization for connection reuse."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def probe(self) -> bool:
        """One connectivity test."""
        client = await self._get_client()
        try:
            response = await client.head(self._probe_url)
        except httpx.HTTPError as e:
            logger.debug(f"Network probe failed: {e}")
            return False
        return response.status_code < 500

    async def check_now(self) -> bool:
        """Probe and publish a change if availability flipped.

        Returns:
            Availability after the check
        """
        reachable = await self.probe()
        if reachable:
            self._consecutive_failures = 0
            if not self._available:
                await self.set_available(True, NetworkChangeType.PERIODIC_TEST)
        else:
            self._consecutive_failures += 1
            if self._available and self._consecutive_failures >= self._failure_threshold:
                await self.set_available(False, NetworkChangeType.PERIODIC_TEST)
        return self._available

    def start(self) -> None:
        self._task.start()

    async def close(self) -> None:
        await self._task.stop()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
