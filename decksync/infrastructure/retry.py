"""Blob-store retry policy on top of tenacity.

Two layers of retry exist:
    - per call: a remote get/put/delete is retried a few times with
      exponential backoff and jitter (retry_operation)
    - per deck: a failed pass re-enqueues the deck with a deterministic
      delay that grows with consecutive failures (RetryPolicy.backoff_for)
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from decksync.domain.errors import RecoverableSyncError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    RecoverableSyncError,
    ConnectionError,
    TimeoutError,
)

_TRANSIENT_HINTS = (
    "timeout",
    "timed out",
    "connection",
    "unavailable",
    "temporary",
    "network",
    "reset by peer",
)

RetryHook = Callable[[int, BaseException], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings shared by call-level and deck-level retries.

    Attributes:
        max_attempts: Tries per remote call, first one included
        initial_wait: First backoff in seconds
        max_wait: Backoff ceiling in seconds
        jitter: Random extra wait (call level only)
    """

    max_attempts: int = 3
    initial_wait: float = 2.0
    max_wait: float = 30.0
    jitter: float = 1.0

    def retrying(
        self,
        retry_on: tuple[type[BaseException], ...] = RETRYABLE_ERRORS,
        on_retry: RetryHook | None = None,
    ) -> AsyncRetrying:
        """Tenacity controller for one remote call."""

        def _before_sleep(state: RetryCallState) -> None:
            if on_retry is not None and state.outcome is not None:
                on_retry(state.attempt_number + 1, state.outcome.exception())

        return AsyncRetrying(
            stop=stop_after_attempt(max(1, self.max_attempts)),
            wait=wait_exponential_jitter(
                initial=self.initial_wait, max=self.max_wait, jitter=self.jitter
            ),
            retry=retry_if_exception_type(retry_on),
            before_sleep=_before_sleep,
            reraise=True,
        )

    def backoff_for(self, failures: int) -> float:
        """Seconds before a deck is retried after N consecutive failed passes.

        Doubles from initial_wait up to max_wait. No jitter, so the queued
        next_attempt_at is reproducible.
        """
        if failures <= 0:
            return 0.0
        return min(self.initial_wait * (2 ** (failures - 1)), self.max_wait)


def is_transient_error(error: BaseException) -> bool:
    """Whether an exception from a blob store looks like a passing network fault."""
    if isinstance(error, RETRYABLE_ERRORS):
        return True
    message = str(error).lower()
    return any(hint in message for hint in _TRANSIENT_HINTS)


async def retry_operation(
    operation: Callable[..., Awaitable[T]],
    *args,
    policy: RetryPolicy | None = None,
    retry_on: tuple[type[BaseException], ...] = RETRYABLE_ERRORS,
    on_retry: RetryHook | None = None,
    **kwargs,
) -> T:
    """Await operation(*args, **kwargs), retrying retry_on errors.

    Args:
        operation: Async callable
        policy: Backoff settings (defaults to RetryPolicy())
        retry_on: Exception types worth another attempt
        on_retry: Called as (next attempt number, error) before each wait

    Raises:
        Exception: The last error once attempts run out, or the first one
            not in retry_on
    """
    policy = policy or RetryPolicy()
    async for attempt in policy.retrying(retry_on, on_retry):
        with attempt:
            return await operation(*args, **kwargs)
    raise RuntimeError("retry loop ended without an attempt")
