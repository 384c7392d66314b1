"""Deck key value object: identifies a note (deck) and where it lives."""

from dataclasses import dataclass
from pathlib import Path

_FORBIDDEN_SEGMENTS = {"", ".", ".."}


def _check_segment(value: str, field_name: str) -> None:
    if value.strip() in _FORBIDDEN_SEGMENTS or "/" in value or "\\" in value:
        raise ValueError(f"Invalid {field_name}: {value!r}")


@dataclass(frozen=True)
class DeckKey:
    """A deck ("note") addressed by name and optional sub-folder.

    An empty sub-folder and no sub-folder are the same deck, so the
    empty string is normalized to None on construction.

    Attributes:
        note_name: Deck name (single path segment)
        sub_folder: Optional grouping folder (single path segment)
    """

    note_name: str
    sub_folder: str | None = None

    def __post_init__(self) -> None:
        _check_segment(self.note_name, "note name")
        if self.sub_folder is not None and self.sub_folder.strip() == "":
            object.__setattr__(self, "sub_folder", None)
        if self.sub_folder is not None:
            _check_segment(self.sub_folder, "sub folder")

    @property
    def storage_sub_folder(self) -> str:
        """Sub-folder as stored in tables and queues ('' when absent)."""
        return self.sub_folder or ""

    def local_dir(self, data_dir: Path) -> Path:
        """Directory holding cards.txt, result.txt and cards/ for this deck."""
        if self.sub_folder:
            return Path(data_dir) / self.sub_folder / self.note_name
        return Path(data_dir) / self.note_name

    def remote_prefix(self, user_id: str) -> str:
        """Remote path prefix: {uid}/{sub_folder?}/{note_name}."""
        parts = [user_id, self.sub_folder, self.note_name]
        return "/".join(p for p in parts if p)

    def remote_path(self, user_id: str, *parts: str) -> str:
        """Build a remote path below this deck's prefix."""
        return "/".join([self.remote_prefix(user_id), *parts])

    def __str__(self) -> str:
        if self.sub_folder:
            return f"{self.sub_folder}/{self.note_name}"
        return self.note_name
