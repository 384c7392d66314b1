"""Review session manager: queues, answers, passes and the background scan."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from decksync.domain.entities.review_session import ReviewSession
from decksync.domain.services import review_scheduler
from decksync.domain.value_objects.deck_key import DeckKey
from decksync.domain.value_objects.review import ReviewOutcome, ReviewState
from decksync.infrastructure.clock import Clock, SystemClock
from decksync.infrastructure.manifest_store import ManifestStore
from decksync.infrastructure.periodic import PeriodicTask, SleepFn
from decksync.infrastructure.result_log import ResultLog

logger = logging.getLogger(__name__)

# Called with (deck, answers recorded) when a session with answers ends
SessionEndHook = Callable[[DeckKey, int], Awaitable[None]]


class SessionConflictError(Exception):
    """Raised when a deck already has an active review session."""

    def __init__(self, existing_session_id: str, deck: DeckKey):
        self.existing_session_id = existing_session_id
        self.deck = deck
        super().__init__(f"Session {existing_session_id} already active for {deck}")


class SessionNotFoundError(Exception):
    """Raised when no active session matches the id."""

    pass


class SessionExpiredError(Exception):
    """Raised when session has timed out."""

    pass


@dataclass
class AnswerResult:
    """Result of answering the card on screen."""

    outcome: ReviewOutcome
    next_card_id: str | None
    remaining_count: int
    pass_number: int
    session_complete: bool


@dataclass
class EndSessionResult:
    """Result of ending a session."""

    session_id: str
    stats: dict
    sync_requested: bool
    warning: str | None = None


class ReviewSessionManager:
    """Owns active review sessions.

    Responsibilities:
    - Initial ordering from manifest + result log
    - Recording answers (result log append, interval policy)
    - Pass restarts when a queue is exhausted
    - Periodic reprioritization scan, inserting only after the card on screen
    - Asking for a deck sync when a session with answers ends
    """

    def __init__(
        self,
        data_dir: Path,
        manifest_store: ManifestStore,
        result_log: ResultLog,
        clock: Clock | None = None,
        on_session_end: SessionEndHook | None = None,
        timeout_minutes: int = 30,
        scan_interval_seconds: float = 30.0,
        sleep: SleepFn = asyncio.sleep,
    ):
        """Initialize session manager.

        Args:
            data_dir: Root directory holding the decks
            manifest_store: Manifest access
            result_log: Result log access
            clock: Time source
            on_session_end: Hook requesting a sync after answers were recorded
            timeout_minutes: Session inactivity timeout
            scan_interval_seconds: Period of the reprioritization scan
            sleep: Sleep function for the scan loop
        """
        self._data_dir = Path(data_dir)
        self._manifest = manifest_store
        self._results = result_log
        self._clock = clock or SystemClock()
        self._on_session_end = on_session_end
        self._timeout_minutes = timeout_minutes
        self._sessions: dict[str, ReviewSession] = {}
        self._scanner = PeriodicTask(
            "review-scan", scan_interval_seconds, self.scan_all, sleep=sleep
        )

    # --- background scan ---

    def start_scanner(self) -> None:
        self._scanner.start()

    async def stop_scanner(self) -> None:
        await self._scanner.stop()

    @property
    def scanner(self) -> PeriodicTask:
        return self._scanner

    async def scan_all(self) -> int:
        """Reprioritize every active session once.

        Returns:
            Total number of cards spliced into queues
        """
        inserted = 0
        for session in list(self._sessions.values()):
            if session.state.is_terminal():
                continue
            inserted += await self.reprioritize_session(session)
        return inserted

    async def reprioritize_session(self, session: ReviewSession) -> int:
        """Splice cards that became due or were answered wrong after the current card.

        Computed from a snapshot; dropped if the session moved on meanwhile
        (the next scan picks the cards up).

        Returns:
            Number of cards inserted
        """
        queue, current_index, version = session.snapshot()
        card_ids, states = await self._load_deck(session.deck)
        now = self._clock.now()
        new_queue = review_scheduler.reprioritize(queue, current_index, card_ids, states, now)
        inserted = len(new_queue) - len(queue)
        if inserted == 0:
            return 0
        if not session.apply_queue(new_queue, version):
            logger.debug(f"Session {session.id} changed during scan, skipping")
            return 0
        session.card_ids = card_ids
        logger.info(f"Session {session.id}: {inserted} card(s) moved up after current card")
        return inserted

    # --- lifecycle ---

    async def _load_deck(self, deck: DeckKey) -> tuple[list[str], dict[str, ReviewState]]:
        deck_dir = deck.local_dir(self._data_dir)
        card_ids = await asyncio.to_thread(self._manifest.active_ids, deck_dir)
        states = await asyncio.to_thread(self._results.fold_all, deck_dir)
        return card_ids, states

    async def preview_order(self, deck: DeckKey) -> list[str]:
        """Order a session on this deck would start with, without starting it."""
        card_ids, states = await self._load_deck(deck)
        return review_scheduler.order(card_ids, states, self._clock.now())

    async def start_session(self, deck: DeckKey) -> ReviewSession:
        """Start reviewing a deck.

        Raises:
            SessionConflictError: If the deck already has an active session
        """
        for existing in self._sessions.values():
            if existing.deck == deck and not existing.state.is_terminal():
                if existing.is_timed_out(self._clock.now(), self._timeout_minutes):
                    await self.end_session(existing.id)
                    break
                raise SessionConflictError(existing.id, deck)

        card_ids, states = await self._load_deck(deck)
        now = self._clock.now()
        queue = review_scheduler.order(card_ids, states, now)
        session = ReviewSession.create(deck, card_ids, queue, now)
        if session.state.is_terminal():
            logger.info(f"Deck {deck} has no cards to review")
        else:
            self._sessions[session.id] = session
            logger.info(f"Started session {session.id} for {deck} with {len(queue)} card(s)")
        return session

    def get_session(self, session_id: str) -> ReviewSession:
        return self._get_session_or_raise(session_id)

    def active_sessions(self) -> list[ReviewSession]:
        return [s for s in self._sessions.values() if not s.state.is_terminal()]

    async def answer(self, session_id: str, card_id: str, correct: bool) -> AnswerResult:
        """Record an answer for the card on screen.

        Appends the outcome to the deck's result log, advances the queue,
        and starts another pass (or completes) when the queue runs out.

        Raises:
            SessionNotFoundError: If no matching session
            ValueError: If card_id is not the card on screen
        """
        session = self._get_session_or_raise(session_id)
        current = session.get_current_card_id()
        if current != card_id:
            raise ValueError(f"Card {card_id} is not the current card ({current})")

        deck_dir = session.deck.local_dir(self._data_dir)
        previous = await asyncio.to_thread(self._results.state_for, deck_dir, card_id)
        now = self._clock.now()
        outcome = review_scheduler.build_outcome(card_id, previous, correct, now)
        await asyncio.to_thread(self._results.append, deck_dir, outcome)
        session.record_answer(card_id, correct, now)

        if session.is_exhausted():
            await self._handle_exhaustion(session)

        return AnswerResult(
            outcome=outcome,
            next_card_id=session.get_current_card_id(),
            remaining_count=session.get_remaining_count(),
            pass_number=session.pass_number,
            session_complete=session.state.is_terminal(),
        )

    async def skip(self, session_id: str) -> str | None:
        """Move the card on screen to the end of the queue.

        Returns:
            Next card id
        """
        session = self._get_session_or_raise(session_id)
        return session.skip_current_card(self._clock.now())

    async def _handle_exhaustion(self, session: ReviewSession) -> None:
        card_ids, states = await self._load_deck(session.deck)
        now = self._clock.now()
        due = review_scheduler.next_pass(card_ids, states, now)
        session.card_ids = card_ids
        if due:
            session.start_pass(due, now)
            logger.info(f"Session {session.id}: pass {session.pass_number} over {len(due)} due card(s)")
        else:
            session.complete(now)
            logger.info(f"Session {session.id}: no cards due, review complete")

    async def end_session(self, session_id: str) -> EndSessionResult:
        """End a session and request a deck sync if anything was answered.

        Raises:
            SessionNotFoundError: If no matching session exists
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")

        now = self._clock.now()
        if not session.state.is_terminal():
            session.complete(now)
        stats = session.get_stats(now)

        sync_requested = False
        warning = None
        if session.answered and self._on_session_end is not None:
            try:
                await self._on_session_end(session.deck, len(session.answered))
                sync_requested = True
            except Exception as e:
                logger.warning(f"Could not request sync for {session.deck}: {e}")
                warning = "Results are saved locally and will sync later."

        logger.info(f"Ended session {session_id} for {session.deck}: {stats}")
        return EndSessionResult(
            session_id=session_id,
            stats=stats,
            sync_requested=sync_requested,
            warning=warning,
        )

    async def end_all_sessions(self) -> int:
        """End every session (for graceful shutdown).

        Returns:
            Number of sessions ended
        """
        ended = 0
        for session_id in list(self._sessions):
            await self.end_session(session_id)
            ended += 1
        return ended

    def _get_session_or_raise(self, session_id: str) -> ReviewSession:
        """Get active session or raise error.

        Raises:
            SessionNotFoundError: If no matching session
            SessionExpiredError: If session has timed out
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")

        now = self._clock.now()
        if session.is_timed_out(now, self._timeout_minutes):
            raise SessionExpiredError("Session has timed out due to inactivity")
        session.touch(now)
        return session
