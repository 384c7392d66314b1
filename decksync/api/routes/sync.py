"""Deck synchronization API routes.

Manual sync, queue inspection and the login/connectivity switches that
drive automatic draining.
"""

from datetime import datetime

from fastapi import APIRouter, status
from pydantic import BaseModel

from decksync.api.dependencies import (
    AuthSessionDep,
    DeckKeyDep,
    NetworkMonitorDep,
    SyncCoordinatorDep,
    UnsyncedQueueDep,
)
from decksync.api.routes.errors import ErrorResponse, api_error, storage_unavailable
from decksync.domain.errors import StorageUnavailable
from decksync.domain.services.sync_coordinator import SyncReport

router = APIRouter(prefix="/api/sync", tags=["sync"])


# =============================================================================
# Request/Response Models
# =============================================================================


class ConflictResponse(BaseModel):
    """A last-write-wins decision taken during a pass."""

    card_id: str
    local_modified: datetime | None
    remote_modified: datetime
    resolution: str


class SyncReportResponse(BaseModel):
    """Outcome of one deck sync pass."""

    deck: str
    state: str
    complete: bool
    queued: bool = False
    pulled: int = 0
    pushed: int = 0
    deleted_remote: int = 0
    deleted_local: int = 0
    recovered: int = 0
    results_merged: int = 0
    purged: int = 0
    active_count: int = 0
    conflicts: list[ConflictResponse] = []
    failures: list[str] = []
    error: str | None = None
    skipped_reason: str | None = None


class DrainResponse(BaseModel):
    """Outcome of draining the unsynced queue."""

    succeeded: list[str]
    failed: list[str]
    stopped_early: bool


class QueueEntryResponse(BaseModel):
    """A deck waiting to be synced."""

    deck: str
    note_name: str
    sub_folder: str | None
    reason: str
    queued_at: datetime
    retry_count: int
    next_attempt_at: datetime | None
    last_error: str | None


class QueueResponse(BaseModel):
    """Unsynced queue in enqueue order."""

    entries: list[QueueEntryResponse]


class SyncStatusResponse(BaseModel):
    """Overall sync status."""

    logged_in: bool
    network_available: bool
    pending_total: int
    pending_manual: int
    pending_offline: int
    pending_error: int
    oldest_queued_at: datetime | None
    deck_states: dict[str, str]


class NetworkRequest(BaseModel):
    """Request body for switching connectivity."""

    available: bool


class NetworkResponse(BaseModel):
    """Connectivity after the switch."""

    was_available: bool
    is_available: bool


class LoginRequest(BaseModel):
    """Request body for login."""

    user_id: str


class LoginResponse(BaseModel):
    """Current login state."""

    logged_in: bool
    user_id: str | None


def _report_response(report: SyncReport) -> SyncReportResponse:
    return SyncReportResponse(
        deck=str(report.deck),
        state=report.state.value,
        complete=report.complete,
        pulled=report.pulled,
        pushed=report.pushed,
        deleted_remote=report.deleted_remote,
        deleted_local=report.deleted_local,
        recovered=report.recovered,
        results_merged=report.results_merged,
        purged=report.purged,
        active_count=report.active_count,
        conflicts=[
            ConflictResponse(
                card_id=c.card_id,
                local_modified=c.local_modified,
                remote_modified=c.remote_modified,
                resolution=c.resolution,
            )
            for c in report.conflicts
        ],
        failures=report.failures,
        error=report.error,
        skipped_reason=report.skipped_reason,
    )


# =============================================================================
# Routes
# =============================================================================


@router.post(
    "/decks/{note_name}",
    response_model=SyncReportResponse,
    responses={503: {"model": ErrorResponse, "description": "Local storage unavailable"}},
)
async def sync_deck(deck: DeckKeyDep, coordinator: SyncCoordinatorDep) -> SyncReportResponse:
    """Sync one deck now.

    When offline or logged out the deck is queued and the response has
    queued=true. Joins the pass already running for the deck, if any.
    """
    try:
        report = await coordinator.request_sync(deck)
    except StorageUnavailable as e:
        raise storage_unavailable(e) from None

    if report is None:
        return SyncReportResponse(
            deck=str(deck),
            state=coordinator.get_state(deck).value,
            complete=False,
            queued=True,
            skipped_reason="offline",
        )
    return _report_response(report)


@router.post("/drain", response_model=DrainResponse)
async def drain_queue(coordinator: SyncCoordinatorDep) -> DrainResponse:
    """Sync every due queued deck in enqueue order."""
    result = await coordinator.drain_queue()
    return DrainResponse(
        succeeded=[str(key) for key in result.succeeded],
        failed=[str(key) for key in result.failed],
        stopped_early=result.stopped_early,
    )


@router.get("/queue", response_model=QueueResponse)
async def get_queue(queue: UnsyncedQueueDep) -> QueueResponse:
    """List the decks waiting to be synced."""
    entries = await queue.list_all()
    return QueueResponse(
        entries=[
            QueueEntryResponse(
                deck=str(entry.key),
                note_name=entry.note_name,
                sub_folder=entry.sub_folder,
                reason=entry.reason.value,
                queued_at=entry.queued_at,
                retry_count=entry.retry_count,
                next_attempt_at=entry.next_attempt_at,
                last_error=entry.last_error,
            )
            for entry in entries
        ]
    )


@router.get("/status", response_model=SyncStatusResponse)
async def get_status(
    queue: UnsyncedQueueDep,
    coordinator: SyncCoordinatorDep,
    auth: AuthSessionDep,
    network: NetworkMonitorDep,
) -> SyncStatusResponse:
    """Pending counts per reason, per-deck states and connectivity."""
    summary = await queue.get_sync_status()
    return SyncStatusResponse(
        logged_in=auth.is_logged_in,
        network_available=network.is_network_available(),
        pending_total=summary.total,
        pending_manual=summary.manual,
        pending_offline=summary.offline,
        pending_error=summary.error,
        oldest_queued_at=summary.oldest_queued_at,
        deck_states={str(key): state.value for key, state in coordinator.all_states().items()},
    )


@router.post("/network", response_model=NetworkResponse)
async def set_network(request: NetworkRequest, network: NetworkMonitorDep) -> NetworkResponse:
    """Switch connectivity by hand. Going online drains the queue."""
    event = await network.set_available(request.available)
    return NetworkResponse(was_available=event.was_available, is_available=event.is_available)


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={422: {"model": ErrorResponse, "description": "Empty user id"}},
)
async def login(request: LoginRequest, auth: AuthSessionDep) -> LoginResponse:
    """Sign in. Logging in drains the queue."""
    try:
        await auth.login(request.user_id)
    except ValueError as e:
        raise api_error(status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_USER", str(e)) from None
    return LoginResponse(logged_in=True, user_id=auth.current_user_id())


@router.post("/logout", response_model=LoginResponse)
async def logout(auth: AuthSessionDep) -> LoginResponse:
    """Sign out. Later changes stay queued until the next login."""
    await auth.logout()
    return LoginResponse(logged_in=False, user_id=None)
