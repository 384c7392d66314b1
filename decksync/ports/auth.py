"""Port interface for the signed-in user."""

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

# (was_logged_in, is_logged_in)
LoginListener = Callable[[bool, bool], Awaitable[None]]


@runtime_checkable
class AuthState(Protocol):
    """Who is signed in, and notifications when that changes."""

    def current_user_id(self) -> str | None:
        """Signed-in user id, or None when logged out."""
        ...

    def subscribe(self, listener: LoginListener) -> None:
        """Register an async listener for login transitions."""
        ...
