"""Review session API routes."""

import logging
from datetime import datetime

from fastapi import APIRouter, status
from pydantic import BaseModel

from decksync.api.dependencies import DeckKeyDep, SessionManagerDep
from decksync.api.routes.errors import ErrorResponse, api_error, storage_unavailable
from decksync.domain.entities.review_session import ReviewSession
from decksync.domain.errors import StorageUnavailable
from decksync.domain.services.review_session_manager import (
    SessionConflictError,
    SessionExpiredError,
    SessionNotFoundError,
)
from decksync.domain.value_objects.deck_key import DeckKey

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/review", tags=["review"])


# =============================================================================
# Request/Response Models
# =============================================================================


class StartReviewRequest(BaseModel):
    """Request body for starting a review session."""

    note_name: str
    sub_folder: str | None = None


class SessionResponse(BaseModel):
    """Review session in API response."""

    session_id: str
    deck: str
    state: str
    pass_number: int
    current_card_id: str | None
    remaining_count: int
    queue: list[str]
    cards_answered: int


class AnswerRequest(BaseModel):
    """Request body for answering the card on screen."""

    card_id: str
    correct: bool


class AnswerResponse(BaseModel):
    """Response for an answer."""

    card_id: str
    correct: bool
    next_review_at: datetime
    next_card_id: str | None
    remaining_count: int
    pass_number: int
    session_complete: bool


class SkipResponse(BaseModel):
    """Response for skip."""

    next_card_id: str | None


class ReviewStatsResponse(BaseModel):
    """Session statistics."""

    cards_answered: int
    correct: int
    incorrect: int
    passes: int
    duration_minutes: int


class EndReviewResponse(BaseModel):
    """Response for session end."""

    session_id: str
    stats: ReviewStatsResponse
    sync_requested: bool
    warning: str | None = None


class OrderResponse(BaseModel):
    """Order a new session on the deck would use."""

    deck: str
    card_ids: list[str]


def _session_response(session: ReviewSession) -> SessionResponse:
    return SessionResponse(
        session_id=session.id,
        deck=str(session.deck),
        state=session.state.value,
        pass_number=session.pass_number,
        current_card_id=session.get_current_card_id(),
        remaining_count=session.get_remaining_count(),
        queue=list(session.queue),
        cards_answered=len(session.answered),
    )


def _session_not_found():
    return api_error(
        status.HTTP_404_NOT_FOUND, "SESSION_NOT_FOUND", "Session not found or already ended"
    )


def _session_expired():
    return api_error(
        status.HTTP_401_UNAUTHORIZED,
        "SESSION_EXPIRED",
        "Session has timed out due to inactivity",
    )


# =============================================================================
# Routes
# =============================================================================


@router.post(
    "/start",
    response_model=SessionResponse,
    responses={
        409: {"model": ErrorResponse, "description": "Session conflict"},
        422: {"model": ErrorResponse, "description": "Invalid deck"},
        503: {"model": ErrorResponse, "description": "Local storage unavailable"},
    },
)
async def start_review(
    request: StartReviewRequest, session_manager: SessionManagerDep
) -> SessionResponse:
    """Start reviewing a deck.

    Untouched cards come first, then cards due for review, then the rest.
    A deck with no cards returns a session already complete.
    """
    try:
        deck = DeckKey(request.note_name, request.sub_folder)
    except ValueError as e:
        raise api_error(status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_DECK", str(e)) from None

    try:
        session = await session_manager.start_session(deck)
    except SessionConflictError as e:
        raise api_error(
            status.HTTP_409_CONFLICT,
            "SESSION_CONFLICT",
            "Another session is active on this deck",
            details={"existing_session_id": e.existing_session_id},
        ) from None
    except StorageUnavailable as e:
        raise storage_unavailable(e) from None

    return _session_response(session)


@router.get(
    "/order/{note_name}",
    response_model=OrderResponse,
    responses={503: {"model": ErrorResponse, "description": "Local storage unavailable"}},
)
async def preview_order(deck: DeckKeyDep, session_manager: SessionManagerDep) -> OrderResponse:
    """Show the order a new session on the deck would use."""
    try:
        card_ids = await session_manager.preview_order(deck)
    except StorageUnavailable as e:
        raise storage_unavailable(e) from None
    return OrderResponse(deck=str(deck), card_ids=card_ids)


@router.get(
    "/{session_id}",
    response_model=SessionResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
        401: {"model": ErrorResponse, "description": "Session expired"},
    },
)
async def get_review(session_id: str, session_manager: SessionManagerDep) -> SessionResponse:
    """Get the session state and the card on screen."""
    try:
        session = session_manager.get_session(session_id)
    except SessionNotFoundError:
        raise _session_not_found() from None
    except SessionExpiredError:
        raise _session_expired() from None
    return _session_response(session)


@router.post(
    "/{session_id}/answer",
    response_model=AnswerResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Not the current card"},
        404: {"model": ErrorResponse, "description": "Session not found"},
        401: {"model": ErrorResponse, "description": "Session expired"},
        503: {"model": ErrorResponse, "description": "Local storage unavailable"},
    },
)
async def answer_card(
    session_id: str, request: AnswerRequest, session_manager: SessionManagerDep
) -> AnswerResponse:
    """Record right/wrong for the card on screen and advance."""
    try:
        result = await session_manager.answer(session_id, request.card_id, request.correct)
    except SessionNotFoundError:
        raise _session_not_found() from None
    except SessionExpiredError:
        raise _session_expired() from None
    except ValueError as e:
        raise api_error(status.HTTP_400_BAD_REQUEST, "NOT_CURRENT_CARD", str(e)) from None
    except StorageUnavailable as e:
        raise storage_unavailable(e) from None

    return AnswerResponse(
        card_id=result.outcome.card_id,
        correct=result.outcome.correct,
        next_review_at=result.outcome.next_review_at,
        next_card_id=result.next_card_id,
        remaining_count=result.remaining_count,
        pass_number=result.pass_number,
        session_complete=result.session_complete,
    )


@router.post(
    "/{session_id}/skip",
    response_model=SkipResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
        401: {"model": ErrorResponse, "description": "Session expired"},
    },
)
async def skip_card(session_id: str, session_manager: SessionManagerDep) -> SkipResponse:
    """Move the card on screen to the end of the queue."""
    try:
        next_card_id = await session_manager.skip(session_id)
    except SessionNotFoundError:
        raise _session_not_found() from None
    except SessionExpiredError:
        raise _session_expired() from None
    return SkipResponse(next_card_id=next_card_id)


@router.post(
    "/{session_id}/end",
    response_model=EndReviewResponse,
    responses={404: {"model": ErrorResponse, "description": "Session not found"}},
)
async def end_review(session_id: str, session_manager: SessionManagerDep) -> EndReviewResponse:
    """End the session. Decks with new answers are queued for sync."""
    try:
        result = await session_manager.end_session(session_id)
    except SessionNotFoundError:
        raise _session_not_found() from None

    if result.warning:
        logger.warning(f"Session {session_id} ended with warning: {result.warning}")

    return EndReviewResponse(
        session_id=result.session_id,
        stats=ReviewStatsResponse(**result.stats),
        sync_requested=result.sync_requested,
        warning=result.warning,
    )
