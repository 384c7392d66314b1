"""Port interface for network availability."""

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from decksync.domain.value_objects.network_state import NetworkStateChanged

NetworkListener = Callable[[NetworkStateChanged], Awaitable[None]]


@runtime_checkable
class NetworkMonitor(Protocol):
    """Reports connectivity and publishes changes."""

    def is_network_available(self) -> bool:
        """Last known availability."""
        ...

    def subscribe(self, listener: NetworkListener) -> None:
        """Register an async listener for NetworkStateChanged events."""
        ...
