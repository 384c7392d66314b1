"""Flat manifest index for a deck (cards.txt).

File layout:
    line 1      active card count
    line 2..n   <id>,<yyyy-MM-dd HH:mm:ss>[,deleted]

The header is a convenience for readers; it is recomputed from the body
on every write, so a wrong or missing header never loses entries.
"""

import logging
import os
from datetime import datetime, timedelta
from pathlib import Path

from decksync.domain.errors import MalformedRecord, StorageUnavailable
from decksync.domain.value_objects.manifest_entry import ManifestEntry, is_valid_card_id
from decksync.infrastructure.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

MANIFEST_FILE = "cards.txt"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DELETED_FLAG = "deleted"


def parse_entry(line: str) -> ManifestEntry:
    """Parse one body line.

    Raises:
        MalformedRecord: If the line does not have the id,timestamp[,deleted] shape
    """
    parts = [p.strip() for p in line.split(",")]
    if len(parts) not in (2, 3):
        raise MalformedRecord(line, "expected id,timestamp[,deleted]")

    card_id = parts[0]
    if not is_valid_card_id(card_id):
        raise MalformedRecord(line, "invalid card id")

    try:
        last_modified = datetime.strptime(parts[1], TIMESTAMP_FORMAT)
    except ValueError as e:
        raise MalformedRecord(line, "invalid timestamp") from e

    tombstone = False
    if len(parts) == 3:
        if parts[2] != DELETED_FLAG:
            raise MalformedRecord(line, f"unknown flag {parts[2]!r}")
        tombstone = True

    return ManifestEntry(id=card_id, last_modified=last_modified, tombstone=tombstone)


def format_entry(entry: ManifestEntry) -> str:
    line = f"{entry.id},{entry.last_modified.strftime(TIMESTAMP_FORMAT)}"
    if entry.tombstone:
        line += f",{DELETED_FLAG}"
    return line


def parse_manifest(text: str, source: str = "<memory>") -> list[ManifestEntry]:
    """Parse manifest text into entries, in file order.

    Blank lines are ignored. Malformed lines and repeated ids are skipped
    and logged; the first line for an id wins.
    """
    lines = text.splitlines()
    if not lines:
        return []

    header = lines[0].strip()
    body_start = 1
    if header and not header.isdigit():
        # No usable header: keep the line if it is really a record
        if "," in header:
            body_start = 0
        else:
            logger.warning(f"Ignoring malformed manifest header in {source}: {header!r}")

    entries: list[ManifestEntry] = []
    seen: set[str] = set()
    for lineno, raw in enumerate(lines[body_start:], start=body_start + 1):
        line = raw.strip()
        if not line:
            continue
        try:
            entry = parse_entry(line)
        except MalformedRecord as e:
            logger.warning(f"Skipping malformed manifest line {lineno} in {source}: {e}")
            continue
        if entry.id in seen:
            logger.warning(f"Skipping duplicate manifest id {entry.id} at line {lineno} in {source}")
            continue
        seen.add(entry.id)
        entries.append(entry)
    return entries


def serialize_manifest(entries: list[ManifestEntry]) -> str:
    """Render entries with a freshly computed header."""
    active = sum(1 for e in entries if not e.tombstone)
    lines = [str(active), *(format_entry(e) for e in entries)]
    return "\n".join(lines) + "\n"


class ManifestStore:
    """Reads and rewrites cards.txt for a deck directory.

    Every mutation is a full read-modify-write of the file. Callers must
    serialize mutations per deck (see DeckLocks); nothing here locks.
    """

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    def path_for(self, deck_dir: Path) -> Path:
        return Path(deck_dir) / MANIFEST_FILE

    def load(self, deck_dir: Path) -> list[ManifestEntry]:
        """Load all entries (live and tombstoned) in file order.

        A missing manifest is an empty deck.

        Raises:
            StorageUnavailable: If the file exists but cannot be read
        """
        path = self.path_for(deck_dir)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            raise StorageUnavailable(str(path), str(e)) from e
        return parse_manifest(text, source=str(path))

    def get(self, deck_dir: Path, card_id: str) -> ManifestEntry | None:
        return next((e for e in self.load(deck_dir) if e.id == card_id), None)

    def active_ids(self, deck_dir: Path) -> list[str]:
        """Ids of live cards in manifest order."""
        return [e.id for e in self.load(deck_dir) if not e.tombstone]

    def active_count(self, deck_dir: Path) -> int:
        return sum(1 for e in self.load(deck_dir) if not e.tombstone)

    def save(self, deck_dir: Path, entries: list[ManifestEntry]) -> None:
        """Atomically replace the manifest with the given entries.

        Raises:
            StorageUnavailable: If the directory or file cannot be written
        """
        path = self.path_for(deck_dir)
        tmp_path = path.with_name(f"{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(serialize_manifest(entries), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageUnavailable(str(path), str(e)) from e

    def upsert(
        self, deck_dir: Path, card_id: str, timestamp: datetime | None = None
    ) -> ManifestEntry:
        """Record a card add or edit.

        Rewrites the line for card_id (reviving it if tombstoned) or appends
        a new one. The stored timestamp always moves forward: if the given
        time is not after the current one it is bumped by one second.

        Args:
            deck_dir: Deck directory
            card_id: Card id
            timestamp: Modification time (defaults to now)

        Returns:
            The entry as written
        """
        if not is_valid_card_id(card_id):
            raise ValueError(f"Invalid card id: {card_id!r}")

        timestamp = timestamp or self._clock.now()
        entries = self.load(deck_dir)
        for i, existing in enumerate(entries):
            if existing.id == card_id:
                entry = ManifestEntry(
                    id=card_id,
                    last_modified=_advance(existing.last_modified, timestamp),
                )
                entries[i] = entry
                break
        else:
            entry = ManifestEntry(id=card_id, last_modified=timestamp.replace(microsecond=0))
            entries.append(entry)

        self.save(deck_dir, entries)
        return entry

    def tombstone(
        self, deck_dir: Path, card_id: str, timestamp: datetime | None = None
    ) -> ManifestEntry | None:
        """Mark a card deleted, keeping its line for delete propagation.

        Returns:
            The tombstoned entry, or None if the id is not in the manifest
        """
        entries = self.load(deck_dir)
        for i, existing in enumerate(entries):
            if existing.id != card_id:
                continue
            if existing.tombstone:
                return existing
            entry = ManifestEntry(
                id=card_id,
                last_modified=_advance(existing.last_modified, timestamp or self._clock.now()),
                tombstone=True,
            )
            entries[i] = entry
            self.save(deck_dir, entries)
            return entry

        logger.debug(f"Tombstone for unknown card {card_id} in {deck_dir} ignored")
        return None

    def apply(self, deck_dir: Path, entry: ManifestEntry) -> None:
        """Write an entry exactly as given (used when pulling remote state)."""
        entries = self.load(deck_dir)
        for i, existing in enumerate(entries):
            if existing.id == entry.id:
                entries[i] = entry
                break
        else:
            entries.append(entry)
        self.save(deck_dir, entries)

    def purge(self, deck_dir: Path, card_ids: set[str]) -> int:
        """Physically drop tombstoned entries. Live entries are never purged.

        Returns:
            Number of entries removed
        """
        entries = self.load(deck_dir)
        kept = [e for e in entries if not (e.tombstone and e.id in card_ids)]
        removed = len(entries) - len(kept)
        if removed:
            self.save(deck_dir, kept)
        return removed

    def recompute_active_count(self, deck_dir: Path) -> int:
        """Rewrite the header if it disagrees with the body.

        Returns:
            Active card count
        """
        path = self.path_for(deck_dir)
        entries = self.load(deck_dir)
        active = sum(1 for e in entries if not e.tombstone)
        if not path.exists():
            return active

        try:
            first_line = path.read_text(encoding="utf-8").split("\n", 1)[0].strip()
        except OSError as e:
            raise StorageUnavailable(str(path), str(e)) from e
        if first_line != str(active):
            logger.info(f"Manifest header for {deck_dir} was {first_line!r}, rewriting as {active}")
            self.save(deck_dir, entries)
        return active

    def read_bytes(self, deck_dir: Path) -> bytes:
        """Normalized manifest bytes for upload."""
        return serialize_manifest(self.load(deck_dir)).encode("utf-8")


def _advance(current: datetime, proposed: datetime) -> datetime:
    proposed = proposed.replace(microsecond=0)
    if proposed <= current:
        return current + timedelta(seconds=1)
    return proposed
