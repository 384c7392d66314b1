"""Network state change events."""

from dataclasses import dataclass
from enum import StrEnum


class NetworkChangeType(StrEnum):
    """What caused a network state change notification."""

    AVAILABILITY = "availability"
    ADDRESS = "address"
    MANUAL = "manual"
    PERIODIC_TEST = "periodic_test"


@dataclass(frozen=True)
class NetworkStateChanged:
    """Emitted when network availability may have changed."""

    was_available: bool
    is_available: bool
    change_type: NetworkChangeType = NetworkChangeType.AVAILABILITY

    @property
    def came_online(self) -> bool:
        return self.is_available and not self.was_available

    @property
    def went_offline(self) -> bool:
        return self.was_available and not self.is_available
