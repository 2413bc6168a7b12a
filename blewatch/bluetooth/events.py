"""
Tracker events delivered to observers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .constants import (
    EVENT_STARTED,
    EVENT_STOPPED,
    EVENT_DEVICE_DISCOVERED,
    EVENT_NEW_DEVICE_DISCOVERED,
    EVENT_NAME_CHANGED,
    EVENT_DEVICE_TIMED_OUT,
)
from .models import DeviceRecord


class EventKind(str, Enum):
    """Kinds of tracker notifications."""
    STARTED = EVENT_STARTED
    STOPPED = EVENT_STOPPED
    DEVICE_DISCOVERED = EVENT_DEVICE_DISCOVERED          # every applied sighting
    NEW_DEVICE_DISCOVERED = EVENT_NEW_DEVICE_DISCOVERED  # first sighting of an address
    NAME_CHANGED = EVENT_NAME_CHANGED                    # known name replaced by another
    DEVICE_TIMED_OUT = EVENT_DEVICE_TIMED_OUT            # evicted by the sweep

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TrackerEvent:
    """A single notification. Device kinds carry the affected record."""
    kind: EventKind
    device: Optional[DeviceRecord] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'type': self.kind.value,
            'device': self.device.to_dict() if self.device else None,
        }


EventHandler = Callable[[TrackerEvent], None]
