"""Signed-in user context with login transition events."""

import logging

from decksync.ports.auth import LoginListener

logger = logging.getLogger(__name__)


class AuthSession:
    """Explicit holder of the current user id.

    Passed to whoever needs the user instead of a process-wide global.
    Listeners receive (was_logged_in, is_logged_in) on every login/logout.
    """

    def __init__(self, user_id: str | None = None):
        self._user_id = user_id
        self._listeners: list[LoginListener] = []

    def current_user_id(self) -> str | None:
        return self._user_id

    @property
    def is_logged_in(self) -> bool:
        return self._user_id is not None

    def subscribe(self, listener: LoginListener) -> None:
        self._listeners.append(listener)

    async def login(self, user_id: str) -> None:
        """Switch to user_id and notify listeners.

        Raises:
            ValueError: If user_id is empty
        """
        if not user_id or not user_id.strip():
            raise ValueError("user_id must not be empty")
        was_logged_in = self.is_logged_in
        self._user_id = user_id
        logger.info(f"User {user_id} logged in")
        await self._notify(was_logged_in, True)

    async def logout(self) -> None:
        was_logged_in = self.is_logged_in
        self._user_id = None
        if was_logged_in:
            logger.info("User logged out")
        await self._notify(was_logged_in, False)

    async def _notify(self, was_logged_in: bool, is_logged_in: bool) -> None:
        for listener in list(self._listeners):
            try:
                await listener(was_logged_in, is_logged_in)
            except Exception as e:
                logger.warning(f"Login listener failed: {e}")
