"""Domain services - orchestration of the review and sync logic."""

from . import review_scheduler
from .auth_session import AuthSession
from .deck_editor import CardExistsError, CardView, DeckEditor
from .review_session_manager import (
    AnswerResult,
    EndSessionResult,
    ReviewSessionManager,
    SessionConflictError,
    SessionExpiredError,
    SessionNotFoundError,
)
from .sync_coordinator import DrainResult, SyncCoordinator, SyncReport
from .sync_triggers import SyncTriggerRouter

__all__ = [
    "AnswerResult",
    "AuthSession",
    "CardExistsError",
    "CardView",
    "DeckEditor",
    "DrainResult",
    "EndSessionResult",
    "ReviewSessionManager",
    "SessionConflictError",
    "SessionExpiredError",
    "SessionNotFoundError",
    "SyncCoordinator",
    "SyncReport",
    "SyncTriggerRouter",
    "review_scheduler",
]
