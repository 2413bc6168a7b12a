"""Exception hierarchy for Bluetooth discovery."""

from __future__ import annotations


class DiscoveryError(Exception):
    """Base exception for all discovery errors."""


class AdvertisementSourceError(DiscoveryError):
    """The advertisement source could not be opened.

    Raised from ``DiscoveryTracker.start()`` when the radio is missing,
    powered off, or access is denied. The tracker stays stopped.
    """


class DeviceLookupError(DiscoveryError):
    """A device-info lookup failed for a single sighting.

    Transient by nature (the device may have moved out of range between
    the advertisement and the lookup). The tracker drops the sighting.
    """

    def __init__(self, message: str, *, address: int | None = None) -> None:
        self.address = address
        super().__init__(message)


class TrackerStateError(DiscoveryError):
    """Operation not valid in the tracker's current state."""


class TrackerClosedError(TrackerStateError):
    """The tracker has been closed and can no longer be used."""
