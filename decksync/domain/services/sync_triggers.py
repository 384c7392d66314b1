"""Turns login and connectivity transitions into queue drains."""

import asyncio
import logging

from decksync.domain.services.sync_coordinator import SyncCoordinator
from decksync.domain.value_objects.network_state import NetworkStateChanged
from decksync.ports.auth import AuthState
from decksync.ports.network import NetworkMonitor

logger = logging.getLogger(__name__)


class SyncTriggerRouter:
    """Subscribes to auth and network events and drains the unsynced queue.

    Drains start on login (logged out -> logged in) and on reconnect
    (offline -> online). Other transitions are ignored. The coordinator's
    drain is single-flight, so bursts of events collapse into one drain.
    """

    def __init__(self, coordinator: SyncCoordinator, auth: AuthState, network: NetworkMonitor):
        self._coordinator = coordinator
        self._auth = auth
        self._network = network
        self._attached = False
        self.last_drain: asyncio.Task | None = None

    def attach(self) -> None:
        """Register listeners (idempotent)."""
        if self._attached:
            return
        self._auth.subscribe(self.on_login_changed)
        self._network.subscribe(self.on_network_changed)
        self._attached = True

    async def on_login_changed(self, was_logged_in: bool, is_logged_in: bool) -> None:
        if is_logged_in and not was_logged_in:
            logger.info("Login detected, draining unsynced decks")
            self._start_drain()

    async def on_network_changed(self, event: NetworkStateChanged) -> None:
        if event.came_online:
            logger.info(f"Network back online ({event.change_type}), draining unsynced decks")
            self._start_drain()
        elif event.went_offline:
            logger.info("Network went offline, pending changes stay queued")

    def _start_drain(self) -> None:
        if not self._coordinator.can_sync():
            logger.debug("Drain trigger ignored: cannot sync yet")
            return
        self.last_drain = self._coordinator.schedule_drain()
