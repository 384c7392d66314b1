"""Card add/edit/delete for a deck, keeping manifest and documents in step."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

from decksync.domain.errors import CardNotFound, PlaceholderCard
from decksync.domain.value_objects.deck_key import DeckKey
from decksync.domain.value_objects.manifest_entry import ManifestEntry, is_valid_card_id
from decksync.infrastructure.card_repository import CardRecord, CardRepository
from decksync.infrastructure.clock import Clock, SystemClock
from decksync.infrastructure.deck_locks import DeckLocks
from decksync.infrastructure.manifest_store import ManifestStore

logger = logging.getLogger(__name__)

# Called after every committed change
ChangeHook = Callable[[DeckKey], Awaitable[None]]


class CardExistsError(Exception):
    """Raised when adding a card whose id is already live in the deck."""

    def __init__(self, card_id: str):
        self.card_id = card_id
        super().__init__(f"Card {card_id} already exists")


@dataclass
class CardView:
    """A live card with its manifest metadata."""

    entry: ManifestEntry
    record: CardRecord | None
    placeholder: bool = False


class DeckEditor:
    """Mutates decks under the per-deck lock.

    The card document is written before the manifest line so a crash
    never leaves a manifest entry pointing at nothing new. Each change is
    reported through on_change (the sync coordinator queues the deck).
    """

    def __init__(
        self,
        data_dir: Path,
        manifest_store: ManifestStore,
        card_repository: CardRepository,
        deck_locks: DeckLocks,
        clock: Clock | None = None,
        on_change: ChangeHook | None = None,
    ):
        self._data_dir = Path(data_dir)
        self._manifest = manifest_store
        self._cards = card_repository
        self._locks = deck_locks
        self._clock = clock or SystemClock()
        self._on_change = on_change

    def deck_dir(self, key: DeckKey) -> Path:
        return key.local_dir(self._data_dir)

    async def list_cards(self, key: DeckKey) -> list[CardView]:
        """Live cards in manifest order. Placeholders are flagged, not dropped."""
        deck_dir = self.deck_dir(key)
        entries = await asyncio.to_thread(self._manifest.load, deck_dir)
        views: list[CardView] = []
        for entry in entries:
            if entry.tombstone:
                continue
            try:
                record = await asyncio.to_thread(self._cards.read, deck_dir, entry.id)
                views.append(CardView(entry=entry, record=record))
            except (CardNotFound, PlaceholderCard) as e:
                logger.warning(f"Card {entry.id} in {key} unreadable: {e}")
                views.append(CardView(entry=entry, record=None, placeholder=True))
        return views

    async def get_card(self, key: DeckKey, card_id: str) -> CardView:
        """Read a live card.

        Raises:
            CardNotFound: If the card is not live in the manifest or has no file
            PlaceholderCard: If the file holds no valid card
        """
        deck_dir = self.deck_dir(key)
        entry = await asyncio.to_thread(self._manifest.get, deck_dir, card_id)
        if entry is None or entry.tombstone:
            raise CardNotFound(card_id)
        record = await asyncio.to_thread(self._cards.read, deck_dir, card_id)
        return CardView(entry=entry, record=record)

    async def active_count(self, key: DeckKey) -> int:
        return await asyncio.to_thread(self._manifest.active_count, self.deck_dir(key))

    async def add_card(
        self, key: DeckKey, record: dict[str, Any], card_id: str | None = None
    ) -> ManifestEntry:
        """Create a card.

        Raises:
            CardExistsError: If card_id is already live
            ValueError: If card_id is not a valid id
        """
        card_id = card_id or uuid4().hex
        if not is_valid_card_id(card_id):
            raise ValueError(f"Invalid card id: {card_id!r}")

        deck_dir = self.deck_dir(key)
        async with self._locks.hold(key):
            existing = await asyncio.to_thread(self._manifest.get, deck_dir, card_id)
            if existing is not None and not existing.tombstone:
                raise CardExistsError(card_id)
            await asyncio.to_thread(self._cards.write, deck_dir, card_id, record)
            entry = await asyncio.to_thread(
                self._manifest.upsert, deck_dir, card_id, self._clock.now()
            )
        logger.info(f"Added card {card_id} to {key}")
        await self._changed(key)
        return entry

    async def edit_card(self, key: DeckKey, card_id: str, record: dict[str, Any]) -> ManifestEntry:
        """Replace a card's document and bump its timestamp.

        Raises:
            CardNotFound: If the card is not live
        """
        deck_dir = self.deck_dir(key)
        async with self._locks.hold(key):
            existing = await asyncio.to_thread(self._manifest.get, deck_dir, card_id)
            if existing is None or existing.tombstone:
                raise CardNotFound(card_id)
            await asyncio.to_thread(self._cards.write, deck_dir, card_id, record)
            entry = await asyncio.to_thread(
                self._manifest.upsert, deck_dir, card_id, self._clock.now()
            )
        logger.info(f"Edited card {card_id} in {key}")
        await self._changed(key)
        return entry

    async def delete_card(self, key: DeckKey, card_id: str) -> ManifestEntry:
        """Tombstone a card and remove its document.

        Raises:
            CardNotFound: If the card is not live
        """
        deck_dir = self.deck_dir(key)
        async with self._locks.hold(key):
            existing = await asyncio.to_thread(self._manifest.get, deck_dir, card_id)
            if existing is None or existing.tombstone:
                raise CardNotFound(card_id)
            entry = await asyncio.to_thread(
                self._manifest.tombstone, deck_dir, card_id, self._clock.now()
            )
            await asyncio.to_thread(self._cards.delete, deck_dir, card_id)
        logger.info(f"Deleted card {card_id} from {key}")
        await self._changed(key)
        return entry

    async def _changed(self, key: DeckKey) -> None:
        if self._on_change is None:
            return
        try:
            await self._on_change(key)
        except Exception as e:
            logger.warning(f"Change hook for {key} failed: {e}")
