"""Shared fixtures for discovery tests."""

import pytest

from blewatch.bluetooth import DiscoveryTracker, Sighting

ADDR_A = 0xAABBCCDDEE01
ADDR_B = 0xAABBCCDDEE02


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_sighting(address=ADDR_A, name=None, rssi=-60, t=0.0, **kwargs):
    return Sighting(address=address, rssi=rssi, timestamp=t, name=name, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(clock):
    """Tracker with a 5 second heartbeat and no background sweep."""
    tracker = DiscoveryTracker(heartbeat_timeout=5.0, sweep_interval=None, clock=clock)
    yield tracker
    tracker.close()


@pytest.fixture
def events(tracker):
    """Every event the tracker emits, in order."""
    received = []
    tracker.subscribe(received.append)
    return received
