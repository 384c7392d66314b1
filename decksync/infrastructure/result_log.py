"""Append-only review result log (result.txt).

One outcome per line:
    <id>|<正解|不正解>|<yyyy/MM/dd HH:mm:ss>

The timestamp is the card's next review time. Answers only ever append;
a card's state is the fold of its lines in file order, the last line
being authoritative. The whole file is replaced only when sync adopts
another device's copy of the log.
"""

import hashlib
import logging
import os
import re
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from decksync.domain.errors import MalformedRecord, StorageUnavailable
from decksync.domain.value_objects.manifest_entry import is_valid_card_id
from decksync.domain.value_objects.review import ReviewOutcome, ReviewState

logger = logging.getLogger(__name__)

RESULT_FILE = "result.txt"
CORRECT_TOKEN = "正解"
INCORRECT_TOKEN = "不正解"
TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S"

_TOKENS = {CORRECT_TOKEN: True, INCORRECT_TOKEN: False}
# exact field widths: strptime alone accepts single-digit fields
_TIMESTAMP_RE = re.compile(r"\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2}")


def format_line(outcome: ReviewOutcome) -> str:
    token = CORRECT_TOKEN if outcome.correct else INCORRECT_TOKEN
    return f"{outcome.card_id}|{token}|{outcome.next_review_at.strftime(TIMESTAMP_FORMAT)}"


def parse_line(line: str) -> ReviewOutcome:
    """Parse one log line.

    Raises:
        MalformedRecord: If the line is torn or not id|token|timestamp
    """
    parts = line.split("|")
    if len(parts) != 3:
        raise MalformedRecord(line, "expected id|result|timestamp")

    card_id, token, stamp = (p.strip() for p in parts)
    if not is_valid_card_id(card_id):
        raise MalformedRecord(line, "invalid card id")
    if token not in _TOKENS:
        raise MalformedRecord(line, f"unknown result token {token!r}")
    if not _TIMESTAMP_RE.fullmatch(stamp):
        raise MalformedRecord(line, "invalid timestamp")
    try:
        next_review_at = datetime.strptime(stamp, TIMESTAMP_FORMAT)
    except ValueError as e:
        raise MalformedRecord(line, "invalid timestamp") from e

    return ReviewOutcome(card_id=card_id, correct=_TOKENS[token], next_review_at=next_review_at)


def fold(outcomes: list[ReviewOutcome]) -> dict[str, ReviewState]:
    """Fold outcomes in order into per-card states."""
    states: dict[str, ReviewState] = {}
    for outcome in outcomes:
        current = states.get(outcome.card_id) or ReviewState(card_id=outcome.card_id)
        states[outcome.card_id] = current.apply(outcome)
    return states


def lines_digest(lines: list[str]) -> str:
    """Order-sensitive digest of normalized log lines."""
    return hashlib.sha256(encode_lines(lines)).hexdigest()


def supersedes(candidate: ReviewState, current: ReviewState | None) -> bool:
    """Whether candidate is the more recent state of a card.

    Lines carry no answer time, so the later next review time stands in
    for the later answer. Ties keep current.
    """
    if current is None or current.next_review_at is None:
        return candidate.next_review_at is not None
    if candidate.next_review_at is None:
        return False
    return candidate.next_review_at > current.next_review_at


@dataclass
class _FoldCache:
    signature: tuple[int, int]
    states: dict[str, ReviewState]


class ResultLog:
    """Append and fold result.txt files.

    Appends to the same file are serialized with a per-path lock; there
    is no cross-process coordination. Fold results are cached per file
    and dropped on every append/merge or when the file's size or mtime
    changes underneath.
    """

    def __init__(self) -> None:
        self._locks: dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._cache: dict[Path, _FoldCache] = {}

    def path_for(self, deck_dir: Path) -> Path:
        return Path(deck_dir) / RESULT_FILE

    def _lock_for(self, path: Path) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(path)
            if lock is None:
                lock = self._locks[path] = threading.Lock()
            return lock

    def append(self, deck_dir: Path, outcome: ReviewOutcome) -> None:
        """Append one outcome with a single O_APPEND write.

        If the file ends in a torn line (no trailing newline), the new
        record starts on a fresh line so the torn bytes stay isolated.

        Raises:
            StorageUnavailable: If the log cannot be written
        """
        self._append_lines(deck_dir, [format_line(outcome)])

    def _append_lines(self, deck_dir: Path, lines: list[str]) -> None:
        path = self.path_for(deck_dir)
        with self._lock_for(path):
            self._append_unlocked(path, lines)

    def _append_unlocked(self, path: Path, lines: list[str]) -> None:
        payload = encode_lines(lines)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if _ends_without_newline(path):
                payload = b"\n" + payload
            fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
            try:
                os.write(fd, payload)
            finally:
                os.close(fd)
        except OSError as e:
            raise StorageUnavailable(str(path), str(e)) from e
        finally:
            self._cache.pop(path, None)

    def read_outcomes(self, deck_dir: Path) -> list[ReviewOutcome]:
        """All parseable outcomes in file order; bad or torn lines are skipped."""
        return [outcome for _, outcome in self._read_parsed(self.path_for(deck_dir))]

    def read_lines(self, deck_dir: Path) -> list[str]:
        """Normalized text of every parseable line, in file order."""
        return [line for line, _ in self._read_parsed(self.path_for(deck_dir))]

    def _read_parsed(self, path: Path) -> list[tuple[str, ReviewOutcome]]:
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageUnavailable(str(path), str(e)) from e
        return parse_text(raw.decode("utf-8", errors="replace"), source=str(path))

    def fold_all(self, deck_dir: Path) -> dict[str, ReviewState]:
        """Current review state for every card that has outcomes.

        Returns:
            Map of card id to folded state (a fresh dict, safe to mutate)
        """
        path = self.path_for(deck_dir)
        try:
            stat = path.stat()
        except FileNotFoundError:
            self._cache.pop(path, None)
            return {}
        except OSError as e:
            raise StorageUnavailable(str(path), str(e)) from e

        signature = (stat.st_size, stat.st_mtime_ns)
        cached = self._cache.get(path)
        if cached is not None and cached.signature == signature:
            return dict(cached.states)

        states = fold([outcome for _, outcome in self._read_parsed(path)])
        self._cache[path] = _FoldCache(signature=signature, states=states)
        return dict(states)

    def state_for(self, deck_dir: Path, card_id: str) -> ReviewState | None:
        return self.fold_all(deck_dir).get(card_id)

    def merge_lines(self, deck_dir: Path, lines: list[str]) -> int:
        """Append another log's lines for the cards where that log is ahead.

        A card's remote lines are taken only when the remote fold of that
        card supersedes the local fold, so the most recent answer ends up
        last and keeps deciding the card's state. Lines already present
        locally are not repeated. Unparseable input lines are skipped.

        Returns:
            Number of lines appended
        """
        path = self.path_for(deck_dir)
        remote = parse_text("\n".join(lines), source="remote")
        remote_states = fold([outcome for _, outcome in remote])

        with self._lock_for(path):
            local = self._read_parsed(path)
            local_states = fold([outcome for _, outcome in local])
            seen = {line for line, _ in local}

            missing: list[str] = []
            for line, outcome in remote:
                if line in seen:
                    continue
                card_id = outcome.card_id
                if not supersedes(remote_states[card_id], local_states.get(card_id)):
                    continue
                seen.add(line)
                missing.append(line)

            skipped = len({line for line, _ in remote} - seen)
            if skipped:
                logger.info(f"Kept local history over {skipped} older remote line(s) in {path}")
            if missing:
                self._append_unlocked(path, missing)
        return len(missing)

    def replace_lines(self, deck_dir: Path, lines: list[str], expected: list[str]) -> bool:
        """Adopt another copy of the log if the local one still reads as expected.

        When expected is a prefix of lines only the tail is appended;
        otherwise the file is swapped atomically.

        Returns:
            False (and nothing written) if the local log changed since
            expected was read
        """
        path = self.path_for(deck_dir)
        with self._lock_for(path):
            current = [line for line, _ in self._read_parsed(path)]
            if current != expected:
                return False
            if lines[: len(current)] == current:
                tail = lines[len(current):]
                if tail:
                    self._append_unlocked(path, tail)
                return True

            tmp_path = path.with_name(f"{path.name}.tmp")
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_bytes(encode_lines(lines))
                os.replace(tmp_path, path)
            except OSError as e:
                raise StorageUnavailable(str(path), str(e)) from e
            finally:
                self._cache.pop(path, None)
            return True


def parse_text(text: str, source: str = "<memory>") -> list[tuple[str, ReviewOutcome]]:
    """Parse log text into (normalized line, outcome) pairs, skipping bad lines."""
    parsed: list[tuple[str, ReviewOutcome]] = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            outcome = parse_line(line)
        except MalformedRecord as e:
            logger.warning(f"Skipping malformed result line {lineno} in {source}: {e}")
            continue
        parsed.append((format_line(outcome), outcome))
    return parsed


def encode_lines(lines: list[str]) -> bytes:
    """Log bytes for normalized lines, one per line with a trailing newline."""
    return "".join(f"{line}\n" for line in lines).encode("utf-8")


def _ends_without_newline(path: Path) -> bool:
    try:
        with path.open("rb") as f:
            f.seek(0, os.SEEK_END)
            if f.tell() == 0:
                return False
            f.seek(-1, os.SEEK_END)
            return f.read(1) != b"\n"
    except FileNotFoundError:
        return False
