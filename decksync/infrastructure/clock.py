"""Injectable clock.

Deck files store naive local timestamps at second precision, so the
clock hands out exactly that.
"""

from datetime import datetime
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of "now" for schedulers and stores."""

    def now(self) -> datetime:
        """Current local time, truncated to whole seconds."""
        ...


class SystemClock:
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now().replace(microsecond=0)
