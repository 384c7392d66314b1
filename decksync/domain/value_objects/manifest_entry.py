"""Manifest entry value object."""

from dataclasses import dataclass
from datetime import datetime

_FORBIDDEN_ID_CHARS = set(",|/\\\r\n")


def is_valid_card_id(card_id: str) -> bool:
    """Check that a card id can be stored in the manifest and result log.

    Ids are single path segments and may not contain the ',' and '|'
    field separators.
    """
    if not card_id or card_id != card_id.strip() or card_id in (".", ".."):
        return False
    return not any(ch in _FORBIDDEN_ID_CHARS for ch in card_id)


@dataclass(frozen=True)
class ManifestEntry:
    """One line of a deck manifest.

    Attributes:
        id: Card id, unique within the deck
        last_modified: Last change time (second precision)
        tombstone: True once the card was deleted; kept until the
            remote delete is confirmed
    """

    id: str
    last_modified: datetime
    tombstone: bool = False

    @property
    def is_active(self) -> bool:
        return not self.tombstone
