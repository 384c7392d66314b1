"""Deck card management API routes."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, status
from pydantic import BaseModel

from decksync.api.dependencies import DeckEditorDep, DeckKeyDep
from decksync.api.routes.errors import ErrorResponse, api_error, storage_unavailable
from decksync.domain.errors import CardNotFound, PlaceholderCard, StorageUnavailable
from decksync.domain.services.deck_editor import CardExistsError
from decksync.domain.value_objects.manifest_entry import ManifestEntry

router = APIRouter(prefix="/api/decks", tags=["decks"])


# =============================================================================
# Request/Response Models
# =============================================================================


class CardEntryResponse(BaseModel):
    """Manifest metadata of a card."""

    id: str
    last_modified: datetime
    deleted: bool = False


class CardResponse(BaseModel):
    """Card in API response."""

    id: str
    last_modified: datetime
    placeholder: bool = False
    record: dict[str, Any] | None = None


class CardsResponse(BaseModel):
    """Response for card listing."""

    deck: str
    active_count: int
    cards: list[CardResponse]


class AddCardRequest(BaseModel):
    """Request body for adding a card. The id is generated when omitted."""

    record: dict[str, Any]
    card_id: str | None = None


class EditCardRequest(BaseModel):
    """Request body for replacing a card document."""

    record: dict[str, Any]


def _entry_response(entry: ManifestEntry) -> CardEntryResponse:
    return CardEntryResponse(
        id=entry.id, last_modified=entry.last_modified, deleted=entry.tombstone
    )


def _card_not_found(card_id: str):
    return api_error(
        status.HTTP_404_NOT_FOUND, "CARD_NOT_FOUND", f"Card {card_id} not found in this deck"
    )


# =============================================================================
# Routes
# =============================================================================


@router.get(
    "/{note_name}/cards",
    response_model=CardsResponse,
    responses={503: {"model": ErrorResponse, "description": "Local storage unavailable"}},
)
async def list_cards(deck: DeckKeyDep, editor: DeckEditorDep) -> CardsResponse:
    """List live cards of a deck in manifest order.

    Cards whose document is missing or a placeholder are listed with
    placeholder=true and no record.
    """
    try:
        views = await editor.list_cards(deck)
    except StorageUnavailable as e:
        raise storage_unavailable(e) from None

    return CardsResponse(
        deck=str(deck),
        active_count=len(views),
        cards=[
            CardResponse(
                id=view.entry.id,
                last_modified=view.entry.last_modified,
                placeholder=view.placeholder,
                record=view.record,
            )
            for view in views
        ],
    )


@router.get(
    "/{note_name}/cards/{card_id}",
    response_model=CardResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Card not found"},
        409: {"model": ErrorResponse, "description": "Card file is a placeholder"},
    },
)
async def get_card(card_id: str, deck: DeckKeyDep, editor: DeckEditorDep) -> CardResponse:
    """Get one live card."""
    try:
        view = await editor.get_card(deck, card_id)
    except CardNotFound:
        raise _card_not_found(card_id) from None
    except PlaceholderCard as e:
        raise api_error(
            status.HTTP_409_CONFLICT,
            "CARD_PLACEHOLDER",
            f"Card {card_id} has no content yet: {e.reason}",
        ) from None
    except StorageUnavailable as e:
        raise storage_unavailable(e) from None

    return CardResponse(id=card_id, last_modified=view.entry.last_modified, record=view.record)


@router.post(
    "/{note_name}/cards",
    response_model=CardEntryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": ErrorResponse, "description": "Card already exists"},
        422: {"model": ErrorResponse, "description": "Invalid card id"},
        503: {"model": ErrorResponse, "description": "Local storage unavailable"},
    },
)
async def add_card(
    request: AddCardRequest, deck: DeckKeyDep, editor: DeckEditorDep
) -> CardEntryResponse:
    """Add a card to a deck and queue the deck for sync."""
    try:
        entry = await editor.add_card(deck, request.record, card_id=request.card_id)
    except CardExistsError as e:
        raise api_error(
            status.HTTP_409_CONFLICT, "CARD_EXISTS", f"Card {e.card_id} already exists"
        ) from None
    except ValueError as e:
        raise api_error(status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_CARD_ID", str(e)) from None
    except StorageUnavailable as e:
        raise storage_unavailable(e) from None
    return _entry_response(entry)


@router.put(
    "/{note_name}/cards/{card_id}",
    response_model=CardEntryResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Card not found"},
        503: {"model": ErrorResponse, "description": "Local storage unavailable"},
    },
)
async def edit_card(
    card_id: str, request: EditCardRequest, deck: DeckKeyDep, editor: DeckEditorDep
) -> CardEntryResponse:
    """Replace a card's document and queue the deck for sync."""
    try:
        entry = await editor.edit_card(deck, card_id, request.record)
    except CardNotFound:
        raise _card_not_found(card_id) from None
    except StorageUnavailable as e:
        raise storage_unavailable(e) from None
    return _entry_response(entry)


@router.delete(
    "/{note_name}/cards/{card_id}",
    response_model=CardEntryResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Card not found"},
        503: {"model": ErrorResponse, "description": "Local storage unavailable"},
    },
)
async def delete_card(card_id: str, deck: DeckKeyDep, editor: DeckEditorDep) -> CardEntryResponse:
    """Delete a card. The manifest keeps a tombstone until the remote delete is confirmed."""
    try:
        entry = await editor.delete_card(deck, card_id)
    except CardNotFound:
        raise _card_not_found(card_id) from None
    except StorageUnavailable as e:
        raise storage_unavailable(e) from None
    return _entry_response(entry)
