"""Review session entity."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Self
from uuid import uuid4

from decksync.domain.value_objects.deck_key import DeckKey
from decksync.domain.value_objects.review_session_state import ReviewSessionState


@dataclass
class ReviewSession:
    """One pass-based review of a deck.

    The queue is the presentation order for the current pass;
    current_index points at the card on screen. Every queue mutation
    bumps version so a background reprioritization computed from an older
    snapshot can be detected and dropped.

    Attributes:
        deck: Deck under review
        card_ids: Live card ids of the deck (refreshed by scans)
        queue: Presentation order of the current pass
        id: Unique session identifier (UUID v4)
        state: Current session state
        current_index: Position of the card on screen
        pass_number: 1 for the initial pass, +1 per restart over due cards
        answered: Card ids answered, in answer order
        correct_count: Correct answers this session
        incorrect_count: Incorrect answers this session
        started_at: When session started
        last_activity: Last user activity timestamp (for timeout)
        version: Queue mutation counter
    """

    deck: DeckKey
    card_ids: list[str] = field(default_factory=list)
    queue: list[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid4()))
    state: ReviewSessionState = ReviewSessionState.ACTIVE
    current_index: int = 0
    pass_number: int = 1
    answered: list[str] = field(default_factory=list)
    correct_count: int = 0
    incorrect_count: int = 0
    started_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)
    version: int = 0

    @classmethod
    def create(cls, deck: DeckKey, card_ids: list[str], queue: list[str], now: datetime) -> Self:
        """Create a session; an empty queue yields a completed session."""
        return cls(
            deck=deck,
            card_ids=list(card_ids),
            queue=list(queue),
            state=ReviewSessionState.ACTIVE if queue else ReviewSessionState.COMPLETE,
            started_at=now,
            last_activity=now,
        )

    def get_current_card_id(self) -> str | None:
        if self.state.is_terminal() or self.current_index >= len(self.queue):
            return None
        return self.queue[self.current_index]

    def get_remaining_count(self) -> int:
        """Cards left in this pass, including the one on screen."""
        return max(0, len(self.queue) - self.current_index)

    def is_exhausted(self) -> bool:
        return self.current_index >= len(self.queue)

    def record_answer(self, card_id: str, correct: bool, now: datetime) -> None:
        """Count an answer for the card on screen and advance.

        Raises:
            ValueError: If the session is complete or card_id is not on screen
        """
        if not self.state.can_accept_answers():
            raise ValueError(f"Cannot answer in state {self.state}")
        current = self.get_current_card_id()
        if current is None:
            raise ValueError("No card to answer - queue is empty")
        if current != card_id:
            raise ValueError(f"Card {card_id} is not the current card ({current})")

        self.answered.append(card_id)
        if correct:
            self.correct_count += 1
        else:
            self.incorrect_count += 1
        self.current_index += 1
        self.version += 1
        self.touch(now)

    def skip_current_card(self, now: datetime) -> str | None:
        """Move the card on screen to the end of the queue.

        Returns:
            Next card id

        Raises:
            ValueError: If there is no card to skip
        """
        if not self.state.can_accept_answers():
            raise ValueError(f"Cannot skip card in state {self.state}")
        current = self.get_current_card_id()
        if current is None:
            raise ValueError("No card to skip - queue is empty")

        self.queue.pop(self.current_index)
        self.queue.append(current)
        self.version += 1
        self.touch(now)
        return self.get_current_card_id()

    def snapshot(self) -> tuple[tuple[str, ...], int, int]:
        """Immutable (queue, current_index, version) view for background scans."""
        return tuple(self.queue), self.current_index, self.version

    def apply_queue(self, queue: list[str], expected_version: int) -> bool:
        """Replace the queue if nothing changed since the snapshot was taken.

        Returns:
            False if the session moved on (the new queue is stale)
        """
        if self.version != expected_version or self.state.is_terminal():
            return False
        self.queue = list(queue)
        self.version += 1
        return True

    def start_pass(self, queue: list[str], now: datetime) -> None:
        """Restart over the given cards (queue exhausted, some cards due)."""
        self.queue = list(queue)
        self.current_index = 0
        self.pass_number += 1
        self.version += 1
        self.touch(now)

    def complete(self, now: datetime) -> None:
        self.state = ReviewSessionState.COMPLETE
        self.version += 1
        self.touch(now)

    def touch(self, now: datetime) -> None:
        """Update last activity timestamp."""
        self.last_activity = now

    def is_timed_out(self, now: datetime, timeout_minutes: int = 30) -> bool:
        return now - self.last_activity > timedelta(minutes=timeout_minutes)

    def get_stats(self, now: datetime) -> dict:
        duration = now - self.started_at
        return {
            "cards_answered": len(self.answered),
            "correct": self.correct_count,
            "incorrect": self.incorrect_count,
            "passes": self.pass_number,
            "duration_minutes": int(duration.total_seconds() / 60),
        }
