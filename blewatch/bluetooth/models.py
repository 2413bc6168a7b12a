"""
Data models for Bluetooth discovery.

Sighting is what an advertisement source delivers, DeviceInfo is what the
optional device-info lookup adds, and DeviceRecord is the snapshot kept in
the tracker registry.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from .address import format_address
from .constants import UNNAMED_DEVICE


@dataclass(frozen=True)
class Sighting:
    """One received advertisement."""
    address: int
    rssi: int
    timestamp: float
    name: Optional[str] = None
    connected: Optional[bool] = None
    can_pair: Optional[bool] = None
    paired: Optional[bool] = None
    device_id: Optional[str] = None


@dataclass(frozen=True)
class DeviceInfo:
    """Extra device state resolved by a device-info lookup."""
    name: Optional[str] = None
    connected: Optional[bool] = None
    can_pair: Optional[bool] = None
    paired: Optional[bool] = None
    device_id: Optional[str] = None


@dataclass(frozen=True)
class DeviceRecord:
    """Latest known state of one device."""
    address: int
    rssi: int
    last_seen: float
    name: str = ''
    connected: Optional[bool] = None
    can_pair: Optional[bool] = None
    paired: Optional[bool] = None
    device_id: Optional[str] = None

    @classmethod
    def from_sighting(
        cls,
        sighting: Sighting,
        info: Optional[DeviceInfo] = None,
    ) -> 'DeviceRecord':
        """
        Build a record from a raw sighting and optional lookup result.

        Values resolved by the lookup win over the advertised ones; fields
        the lookup leaves unset fall back to the sighting.
        """
        name = sighting.name or ''
        connected = sighting.connected
        can_pair = sighting.can_pair
        paired = sighting.paired
        device_id = sighting.device_id

        if info is not None:
            if info.name:
                name = info.name
            if info.connected is not None:
                connected = info.connected
            if info.can_pair is not None:
                can_pair = info.can_pair
            if info.paired is not None:
                paired = info.paired
            if info.device_id:
                device_id = info.device_id

        return cls(
            address=sighting.address,
            rssi=sighting.rssi,
            last_seen=sighting.timestamp,
            name=name,
            connected=connected,
            can_pair=can_pair,
            paired=paired,
            device_id=device_id,
        )

    @property
    def address_str(self) -> str:
        """Address formatted as a MAC string."""
        return format_address(self.address)

    @property
    def display_name(self) -> str:
        """Name, or a placeholder when the device is unnamed."""
        return self.name or UNNAMED_DEVICE

    def with_name(self, name: str) -> 'DeviceRecord':
        return replace(self, name=name)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'address': self.address_str,
            'name': self.name or None,
            'rssi': self.rssi,
            'last_seen': self.last_seen,
            'connected': self.connected,
            'can_pair': self.can_pair,
            'paired': self.paired,
            'device_id': self.device_id,
        }

    def __str__(self) -> str:
        return f'{self.display_name} [{self.address_str}] ({self.rssi})'
