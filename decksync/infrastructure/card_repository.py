"""One JSON document per card under <deck>/cards/<id>.json."""

import json
import logging
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from decksync.domain.errors import CardNotFound, PlaceholderCard, StorageUnavailable
from decksync.domain.value_objects.manifest_entry import is_valid_card_id

logger = logging.getLogger(__name__)

CARDS_DIR = "cards"
DEFAULT_PLACEHOLDER_MIN_BYTES = 10

CardRecord = dict[str, Any]


class CardRepository:
    """Card document storage with placeholder detection.

    A file that is empty, shorter than placeholder_min_bytes, not a JSON
    object, or missing a string "id" is a placeholder: it exists but
    carries no card. Readers get PlaceholderCard so they can recover from
    another copy before giving the card up.
    """

    def __init__(self, placeholder_min_bytes: int = DEFAULT_PLACEHOLDER_MIN_BYTES):
        self._min_bytes = placeholder_min_bytes

    def card_path(self, deck_dir: Path, card_id: str) -> Path:
        if not is_valid_card_id(card_id):
            raise ValueError(f"Invalid card id: {card_id!r}")
        return Path(deck_dir) / CARDS_DIR / f"{card_id}.json"

    def parse(self, data: bytes, card_id: str) -> CardRecord:
        """Validate raw bytes as a card document.

        Raises:
            PlaceholderCard: If the bytes are not a usable card
        """
        if not data.strip():
            raise PlaceholderCard(card_id, "empty file")
        if len(data) < self._min_bytes:
            raise PlaceholderCard(card_id, f"only {len(data)} bytes")
        try:
            record = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PlaceholderCard(card_id, f"unparsable JSON: {e}") from e
        if not isinstance(record, dict):
            raise PlaceholderCard(card_id, "not a JSON object")
        if not isinstance(record.get("id"), str) or not record["id"]:
            raise PlaceholderCard(card_id, "missing id")
        if record["id"] != card_id:
            raise PlaceholderCard(card_id, f"document id is {record['id']!r}")
        return record

    def is_placeholder(self, data: bytes, card_id: str) -> bool:
        try:
            self.parse(data, card_id)
        except PlaceholderCard:
            return True
        return False

    def exists(self, deck_dir: Path, card_id: str) -> bool:
        return self.card_path(deck_dir, card_id).is_file()

    def read_bytes(self, deck_dir: Path, card_id: str) -> bytes:
        """Raw file content, without validation.

        Raises:
            CardNotFound: If no file exists
            StorageUnavailable: If the file cannot be read
        """
        path = self.card_path(deck_dir, card_id)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise CardNotFound(card_id) from e
        except OSError as e:
            raise StorageUnavailable(str(path), str(e)) from e

    def read(
        self,
        deck_dir: Path,
        card_id: str,
        fallback_dirs: Iterable[Path] = (),
    ) -> CardRecord:
        """Read and validate a card.

        If the local copy is a placeholder, each fallback deck directory is
        tried in order; the first valid copy is written back locally.

        Args:
            deck_dir: Deck directory
            card_id: Card id
            fallback_dirs: Alternate deck directories holding older copies

        Returns:
            Card document

        Raises:
            CardNotFound: If no file exists locally
            PlaceholderCard: If no valid copy could be found
        """
        data = self.read_bytes(deck_dir, card_id)
        try:
            return self.parse(data, card_id)
        except PlaceholderCard as e:
            logger.warning(f"Card {card_id} in {deck_dir} is a placeholder: {e.reason}")
            recovered = self._recover_from(fallback_dirs, card_id)
            if recovered is None:
                raise
            self.write_bytes(deck_dir, card_id, recovered)
            logger.info(f"Restored card {card_id} in {deck_dir} from alternate copy")
            return self.parse(recovered, card_id)

    def _recover_from(self, fallback_dirs: Iterable[Path], card_id: str) -> bytes | None:
        for candidate_dir in fallback_dirs:
            try:
                data = self.read_bytes(candidate_dir, card_id)
            except (CardNotFound, StorageUnavailable):
                continue
            if not self.is_placeholder(data, card_id):
                return data
        return None

    def write(self, deck_dir: Path, card_id: str, record: CardRecord) -> None:
        """Write a card document. The record's id is forced to card_id."""
        record = {**record, "id": card_id}
        data = json.dumps(record, ensure_ascii=False, indent=2).encode("utf-8")
        self.write_bytes(deck_dir, card_id, data)

    def write_bytes(self, deck_dir: Path, card_id: str, data: bytes) -> None:
        """Atomically write raw card bytes after validating them.

        Raises:
            PlaceholderCard: If data is not a valid card (nothing is written)
            StorageUnavailable: If the file cannot be written
        """
        self.parse(data, card_id)
        path = self.card_path(deck_dir, card_id)
        tmp_path = path.with_name(f"{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageUnavailable(str(path), str(e)) from e

    def delete(self, deck_dir: Path, card_id: str) -> bool:
        """Remove a card file. Deleting a missing card is not an error.

        Returns:
            True if a file was removed
        """
        path = self.card_path(deck_dir, card_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageUnavailable(str(path), str(e)) from e
        return True
