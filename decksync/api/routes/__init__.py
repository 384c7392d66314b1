"""API routes module."""

from .decks import router as decks_router
from .review import router as review_router
from .sync import router as sync_router

__all__ = ["decks_router", "review_router", "sync_router"]
