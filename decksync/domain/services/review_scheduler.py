"""Card ordering and next-review policy.

Pure functions over card ids and folded review states; no I/O.

Buckets (ascending priority order):
    0 UNTOUCHED   never answered
    1 DUE         next_review_at <= now
    2 LAST_WRONG  not due yet, but the last answer was wrong
    3 OTHER       everything else

Interval policy (previous result -> outcome -> interval):
    none       correct    +10 minutes
    none       incorrect  +1 minute
    correct    correct    +1 day
    correct    incorrect  +10 minutes
    incorrect  correct    +1 day
    incorrect  incorrect  +1 minute
"""

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timedelta
from enum import IntEnum

from decksync.domain.value_objects.review import ReviewOutcome, ReviewState

SHORT_INTERVAL = timedelta(minutes=1)
MEDIUM_INTERVAL = timedelta(minutes=10)
LONG_INTERVAL = timedelta(days=1)


class Bucket(IntEnum):
    UNTOUCHED = 0
    DUE = 1
    LAST_WRONG = 2
    OTHER = 3


def _unique(card_ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(card_ids))


def bucket_of(state: ReviewState | None, now: datetime) -> Bucket:
    """Classify one card."""
    if state is None or state.last_result is None or state.next_review_at is None:
        return Bucket.UNTOUCHED
    if state.next_review_at <= now:
        return Bucket.DUE
    if state.last_result is False:
        return Bucket.LAST_WRONG
    return Bucket.OTHER


def _sort_key(state: ReviewState | None, now: datetime) -> tuple[int, datetime]:
    bucket = bucket_of(state, now)
    if bucket is Bucket.UNTOUCHED:
        return (bucket, datetime.min)
    return (bucket, state.next_review_at)


def order(
    cards: Sequence[str],
    states: Mapping[str, ReviewState],
    now: datetime,
) -> list[str]:
    """Order cards for presentation.

    Stable sort by bucket, then next_review_at within buckets 1-3.
    Untouched cards keep their encounter order. Repeated ids keep their
    first position.

    Args:
        cards: Card ids in deck order
        states: Folded review states (cards without history may be absent)
        now: Current time

    Returns:
        Card ids in presentation order
    """
    return sorted(_unique(cards), key=lambda card_id: _sort_key(states.get(card_id), now))


def next_review_at(previous: ReviewState | None, correct: bool, now: datetime) -> datetime:
    """Next review time for an answer, given the card's state before it."""
    if previous is None or previous.last_result is None:
        return now + (MEDIUM_INTERVAL if correct else SHORT_INTERVAL)
    if correct:
        return now + LONG_INTERVAL
    return now + (MEDIUM_INTERVAL if previous.last_result else SHORT_INTERVAL)


def build_outcome(
    card_id: str,
    previous: ReviewState | None,
    correct: bool,
    now: datetime,
) -> ReviewOutcome:
    """Outcome to append to the result log for one answer."""
    return ReviewOutcome(
        card_id=card_id,
        correct=correct,
        next_review_at=next_review_at(previous, correct, now),
        recorded_at=now,
    )


def _reprioritize_rank(state: ReviewState | None, now: datetime) -> tuple[int, datetime]:
    # untouched, due and last right, due and last wrong, not due and last wrong
    if state is None or state.last_result is None or state.next_review_at is None:
        return (0, datetime.min)
    due = state.next_review_at <= now
    if due and state.last_result:
        rank = 1
    elif due:
        rank = 2
    else:
        rank = 3
    return (rank, state.next_review_at)


def reprioritize(
    queue: Sequence[str],
    current_index: int,
    cards: Sequence[str],
    states: Mapping[str, ReviewState],
    now: datetime,
) -> list[str]:
    """Splice cards that need attention right after the current card.

    Works on a snapshot of queue. Candidates are deck cards that are not
    the current card, are not already queued after it, and are now in
    bucket 0, 1 or 2. Untouched cards that were already passed in this
    queue are not candidates (they were skipped). Nothing at or before
    current_index moves, and cards already queued after it keep their
    relative order.

    Args:
        queue: Current presentation queue
        current_index: Index of the card on screen (-1 if none yet)
        cards: All card ids of the deck
        states: Folded review states
        now: Current time

    Returns:
        New queue (queue itself if nothing qualifies)
    """
    snapshot = list(queue)
    if current_index >= len(snapshot):
        current_index = len(snapshot) - 1
    head = snapshot[: current_index + 1] if current_index >= 0 else []
    tail = snapshot[current_index + 1 :] if current_index >= 0 else snapshot
    current = head[-1] if head else None
    queued_ahead = set(tail)
    already_passed = set(head)

    candidates: list[str] = []
    for card_id in _unique(cards):
        if card_id == current or card_id in queued_ahead:
            continue
        bucket = bucket_of(states.get(card_id), now)
        if bucket is Bucket.OTHER:
            continue
        if bucket is Bucket.UNTOUCHED and card_id in already_passed:
            continue
        candidates.append(card_id)

    if not candidates:
        return snapshot

    candidates.sort(key=lambda card_id: _reprioritize_rank(states.get(card_id), now))
    return head + candidates + tail


def next_pass(
    cards: Sequence[str],
    states: Mapping[str, ReviewState],
    now: datetime,
) -> list[str]:
    """Cards for another pass once the queue is exhausted.

    Every card whose next_review_at <= now, by next_review_at. An empty
    result means the session is complete.
    """
    due: list[str] = []
    for card_id in _unique(cards):
        state = states.get(card_id)
        if state is not None and state.next_review_at is not None and state.next_review_at <= now:
            due.append(card_id)
    return sorted(due, key=lambda card_id: states[card_id].next_review_at)
