"""Per-deck sync watermarks (.sync_state.json)."""

import logging
import os
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from decksync.domain.errors import StorageUnavailable

logger = logging.getLogger(__name__)

SYNC_STATE_FILE = ".sync_state.json"


class DeckSyncWatermark(BaseModel):
    """What the remote store is known to hold for one deck.

    Attributes:
        synced: card id -> manifest timestamp last confirmed remotely
        remote_deleted: card id -> when the remote delete was confirmed
        last_synced_at: end of the last complete sync pass
        results_digest: digest of the result log both sides held after
            the last results sync
    """

    synced: dict[str, datetime] = Field(default_factory=dict)
    remote_deleted: dict[str, datetime] = Field(default_factory=dict)
    last_synced_at: datetime | None = None
    results_digest: str | None = None

    def needs_push(self, card_id: str, last_modified: datetime) -> bool:
        synced_at = self.synced.get(card_id)
        return synced_at is None or last_modified > synced_at

    def mark_synced(self, card_id: str, last_modified: datetime) -> None:
        self.synced[card_id] = last_modified

    def mark_remote_deleted(self, card_id: str, last_modified: datetime, now: datetime) -> None:
        self.synced[card_id] = last_modified
        self.remote_deleted[card_id] = now

    def forget(self, card_ids: set[str]) -> None:
        for card_id in card_ids:
            self.synced.pop(card_id, None)
            self.remote_deleted.pop(card_id, None)


class SyncStateStore:
    """Load/save watermarks next to the deck's manifest."""

    def path_for(self, deck_dir: Path) -> Path:
        return Path(deck_dir) / SYNC_STATE_FILE

    def load(self, deck_dir: Path) -> DeckSyncWatermark:
        """Load watermarks; a missing or corrupt file means nothing is known synced."""
        path = self.path_for(deck_dir)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return DeckSyncWatermark()
        except OSError as e:
            raise StorageUnavailable(str(path), str(e)) from e

        try:
            return DeckSyncWatermark.model_validate_json(text)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable sync state {path}: {e}")
            return DeckSyncWatermark()

    def save(self, deck_dir: Path, watermark: DeckSyncWatermark) -> None:
        path = self.path_for(deck_dir)
        tmp_path = path.with_name(f"{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(watermark.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageUnavailable(str(path), str(e)) from e
