"""
Bluetooth discovery package for blewatch.

Provides the discovery tracker, its device and event models, and address
helpers. The bleak-backed advertisement source lives in
``blewatch.bluetooth.bleak_source`` and is imported on demand.
"""

from .address import format_address, is_address, parse_address
from .constants import (
    DEFAULT_HEARTBEAT_TIMEOUT,
    DEFAULT_SWEEP_INTERVAL,
    UNNAMED_DEVICE,
)
from .events import EventHandler, EventKind, TrackerEvent
from .exceptions import (
    AdvertisementSourceError,
    DeviceLookupError,
    DiscoveryError,
    TrackerClosedError,
    TrackerStateError,
)
from .models import DeviceInfo, DeviceRecord, Sighting
from .tracker import AdvertisementSource, DiscoveryTracker

__all__ = [
    # Tracker
    'DiscoveryTracker',
    'AdvertisementSource',

    # Models
    'DeviceRecord',
    'DeviceInfo',
    'Sighting',

    # Events
    'EventKind',
    'TrackerEvent',
    'EventHandler',

    # Exceptions
    'DiscoveryError',
    'AdvertisementSourceError',
    'DeviceLookupError',
    'TrackerStateError',
    'TrackerClosedError',

    # Address helpers
    'parse_address',
    'format_address',
    'is_address',

    # Constants
    'DEFAULT_HEARTBEAT_TIMEOUT',
    'DEFAULT_SWEEP_INTERVAL',
    'UNNAMED_DEVICE',
]
