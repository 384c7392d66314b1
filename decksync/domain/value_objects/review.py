"""Review outcome and derived review state."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ReviewOutcome:
    """One answered card, as appended to the result log.

    Attributes:
        card_id: Card that was answered
        correct: Whether the answer was correct
        next_review_at: When the card becomes due again
        recorded_at: When the answer was given (in-memory only, the log
            line does not carry it)
    """

    card_id: str
    correct: bool
    next_review_at: datetime
    recorded_at: datetime | None = None


@dataclass(frozen=True)
class ReviewState:
    """Fold of every outcome for one card, in log order.

    The last outcome decides last_result and next_review_at; counts
    accumulate over all outcomes.
    """

    card_id: str
    correct_count: int = 0
    incorrect_count: int = 0
    last_result: bool | None = None
    next_review_at: datetime | None = None

    @property
    def attempts(self) -> int:
        return self.correct_count + self.incorrect_count

    @property
    def was_attempted(self) -> bool:
        return self.last_result is not None

    def apply(self, outcome: ReviewOutcome) -> "ReviewState":
        """Return the state after folding in one more outcome."""
        return ReviewState(
            card_id=self.card_id,
            correct_count=self.correct_count + (1 if outcome.correct else 0),
            incorrect_count=self.incorrect_count + (0 if outcome.correct else 1),
            last_result=outcome.correct,
            next_review_at=outcome.next_review_at,
        )
