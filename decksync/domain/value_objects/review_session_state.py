"""Review session state value object."""

from enum import StrEnum


class ReviewSessionState(StrEnum):
    """Review session lifecycle states.

    State machine:
        ACTIVE -> ACTIVE     (queue exhausted, another pass over due cards)
        ACTIVE -> COMPLETE   (queue exhausted and nothing due, or ended by user)

    States:
        ACTIVE: Presenting cards from the queue
        COMPLETE: Nothing left to review, or the session was ended
    """

    ACTIVE = "active"
    COMPLETE = "complete"

    def can_accept_answers(self) -> bool:
        """Check if session can accept answers."""
        return self is ReviewSessionState.ACTIVE

    def is_terminal(self) -> bool:
        return self is ReviewSessionState.COMPLETE
