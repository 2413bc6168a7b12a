"""
blewatch - live registry of nearby Bluetooth LE devices.

Tracks advertisements, evicts silent devices, and notifies observers of
new devices, name changes and timeouts.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("blewatch")
except PackageNotFoundError:
    __version__ = "0+local"
