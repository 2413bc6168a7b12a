"""
Bluetooth hardware address helpers.

Devices are keyed by their 48-bit hardware address held as an integer.
Platform-issued string identifiers are never used as registry keys.
"""

from __future__ import annotations

import re
from typing import Union

from .constants import ADDRESS_MAX

_MAC_PATTERN = re.compile(r'^[0-9A-Fa-f]{2}([:-]?)(?:[0-9A-Fa-f]{2}\1){4}[0-9A-Fa-f]{2}$')


def parse_address(value: Union[str, int]) -> int:
    """
    Convert a Bluetooth address into its integer form.

    Accepts colon or dash separated MAC strings, bare 12-digit hex strings,
    or integers already in the 48-bit range.

    Args:
        value: The address to parse.

    Returns:
        The address as an unsigned 48-bit integer.

    Raises:
        ValueError: If the value is not a valid 48-bit address.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid Bluetooth address: {value!r}")

    if isinstance(value, int):
        if 0 <= value <= ADDRESS_MAX:
            return value
        raise ValueError(f"Bluetooth address out of range: {value}")

    text = str(value).strip()
    if not _MAC_PATTERN.match(text):
        raise ValueError(f"Invalid Bluetooth address: {value!r}")

    return int(text.replace(':', '').replace('-', ''), 16)


def format_address(address: int) -> str:
    """
    Render an integer address as an upper-case colon separated MAC.

    Args:
        address: The 48-bit address.

    Returns:
        A string such as ``AA:BB:CC:DD:EE:FF``.
    """
    raw = f'{address:012X}'
    return ':'.join(raw[i:i + 2] for i in range(0, 12, 2))


def is_address(value: str) -> bool:
    """Check if a string looks like a Bluetooth MAC address."""
    return bool(_MAC_PATTERN.match(value.strip()))
