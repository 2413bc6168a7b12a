"""
Discovery tracker for Bluetooth advertisements.

Keeps a deduplicated registry of visible devices keyed by hardware address,
evicts devices that stop advertising, and turns the raw stream of repeated
sightings into discovered / new / name changed / timed out notifications.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, Optional, Protocol, Union

from .address import format_address, parse_address
from .constants import (
    DEFAULT_HEARTBEAT_TIMEOUT,
    DEFAULT_SWEEP_INTERVAL,
    REGISTRY_CALL_TIMEOUT,
    REGISTRY_THREAD_NAME,
    SWEEP_THREAD_NAME,
)
from .events import EventHandler, EventKind, TrackerEvent
from .exceptions import (
    AdvertisementSourceError,
    DeviceLookupError,
    TrackerClosedError,
    TrackerStateError,
)
from .models import DeviceInfo, DeviceRecord, Sighting

logger = logging.getLogger('blewatch.tracker')


class AdvertisementSource(Protocol):
    """
    Delivers raw sightings to the tracker.

    Sources may also provide ``lookup(address) -> DeviceInfo | None`` to
    enrich sightings and ``pair(address) -> bool`` for pairing. Both are
    optional and discovered with ``getattr``.
    """

    def start(
        self,
        on_sighting: Callable[[Sighting], None],
        on_stopped: Callable[[], None],
    ) -> None:
        ...

    def stop(self) -> None:
        ...


class DiscoveryTracker:
    """
    Tracks currently visible devices from a stream of advertisements.

    The registry is owned by a single worker thread. Every read and write
    is submitted to it as a command and answered through a future, so
    transition detection and the registry write always happen together.
    Events produced by a command are dispatched on the calling thread once
    the command has completed, which lets observers call back into the
    tracker.
    """

    def __init__(
        self,
        source: Optional[AdvertisementSource] = None,
        heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT,
        sweep_interval: Optional[float] = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        enrich: bool = True,
    ):
        """
        Initialize the tracker.

        Args:
            source: Advertisement source started and stopped with the tracker.
                Without one, sightings are pushed through ``on_sighting``.
            heartbeat_timeout: Seconds of silence before a device times out.
            sweep_interval: Seconds between background sweeps while
                listening, or None to sweep only on demand.
            clock: Time source for sighting timestamps and sweeps.
            enrich: Whether to call the source's device-info lookup.
        """
        self._source = source
        self.heartbeat_timeout = heartbeat_timeout
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._enrich = enrich

        # Registry, only ever touched by the worker thread
        self._devices: dict[int, DeviceRecord] = {}

        self._commands: queue.Queue = queue.Queue()
        self._submit_lock = threading.Lock()
        self._closed = False

        self._lifecycle_lock = threading.RLock()
        self._listening = False
        self._sweep_thread: Optional[threading.Thread] = None
        self._sweep_stop = threading.Event()

        self._handlers_lock = threading.Lock()
        self._handlers: tuple[EventHandler, ...] = ()

        self._worker = threading.Thread(
            target=self._run,
            daemon=True,
            name=REGISTRY_THREAD_NAME,
        )
        self._worker.start()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def heartbeat_timeout(self) -> float:
        """Seconds a device may stay silent before it is evicted."""
        return self._heartbeat_timeout

    @heartbeat_timeout.setter
    def heartbeat_timeout(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"heartbeat_timeout must be positive, got {value}")
        self._heartbeat_timeout = float(value)

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def device_count(self) -> int:
        """Number of devices in the registry, without sweeping."""
        return self._call(self._count)

    @property
    def source(self) -> Optional[AdvertisementSource]:
        return self._source

    # =========================================================================
    # OBSERVERS
    # =========================================================================

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """
        Register a handler for every tracker event.

        Returns:
            A callable that removes the handler again.
        """
        with self._handlers_lock:
            self._handlers = self._handlers + (handler,)
        return lambda: self.unsubscribe(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        with self._handlers_lock:
            handlers = list(self._handlers)
            if handler in handlers:
                handlers.remove(handler)
            self._handlers = tuple(handlers)

    def _dispatch(self, events: list[TrackerEvent]) -> None:
        """Deliver events to every handler, isolating handler failures."""
        if not events:
            return
        handlers = self._handlers
        for event in events:
            for handler in handlers:
                try:
                    handler(event)
                except Exception as e:
                    logger.error(f"Event handler failed for {event.kind}: {e}")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """
        Start listening for advertisements.

        Does nothing if already listening.

        Raises:
            AdvertisementSourceError: If the advertisement source cannot be
                opened. The tracker stays stopped.
            TrackerClosedError: If the tracker has been closed.
        """
        if self._closed:
            raise TrackerClosedError("Discovery tracker is closed")

        with self._lifecycle_lock:
            if self._listening:
                return

            if self._source is not None:
                try:
                    self._source.start(self.on_sighting, self._on_source_stopped)
                except AdvertisementSourceError:
                    raise
                except Exception as e:
                    raise AdvertisementSourceError(
                        f"Failed to start advertisement source: {e}"
                    ) from e

            self._listening = True
            self._start_sweep_timer()

        logger.info("Discovery tracker started listening")
        self._dispatch([TrackerEvent(EventKind.STARTED)])

    def stop(self) -> None:
        """
        Stop listening and forget every tracked device.

        Does nothing if already stopped.
        """
        self._transition_to_stopped(stop_source=True)

    def close(self) -> None:
        """Stop the tracker and shut down its worker thread."""
        if self._closed:
            return

        self.stop()

        with self._submit_lock:
            if self._closed:
                return
            self._closed = True
            self._commands.put(None)

        self._worker.join(timeout=REGISTRY_CALL_TIMEOUT)

    def __enter__(self) -> 'DiscoveryTracker':
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _on_source_stopped(self) -> None:
        """Called by the source when it stops without being asked to."""
        if self._listening:
            logger.warning("Advertisement source stopped unexpectedly")
        self._transition_to_stopped(stop_source=False)

    def _transition_to_stopped(self, stop_source: bool) -> None:
        with self._lifecycle_lock:
            if not self._listening:
                return

            # Flip first so sightings still queued for the worker are dropped
            self._listening = False
            self._stop_sweep_timer()

            if stop_source and self._source is not None:
                try:
                    self._source.stop()
                except Exception as e:
                    logger.warning(f"Error stopping advertisement source: {e}")

            if not self._closed:
                self._call(self._clear)

        logger.info("Discovery tracker stopped listening")
        self._dispatch([TrackerEvent(EventKind.STOPPED)])

    def _start_sweep_timer(self) -> None:
        if self._sweep_interval is None:
            return

        self._sweep_stop = threading.Event()
        self._sweep_thread = threading.Thread(
            target=self._sweep_loop,
            args=(self._sweep_stop, self._sweep_interval),
            daemon=True,
            name=SWEEP_THREAD_NAME,
        )
        self._sweep_thread.start()

    def _stop_sweep_timer(self) -> None:
        self._sweep_stop.set()
        thread = self._sweep_thread
        self._sweep_thread = None
        if thread and thread is not threading.current_thread():
            thread.join(timeout=2.0)

    def _sweep_loop(self, stop_event: threading.Event, interval: float) -> None:
        """Background thread evicting silent devices on a fixed interval."""
        while not stop_event.wait(interval):
            try:
                self.sweep()
            except TrackerClosedError:
                break
            except Exception as e:
                logger.error(f"Background sweep failed: {e}")

    # =========================================================================
    # INGESTION
    # =========================================================================

    def on_sighting(self, sighting: Sighting) -> None:
        """
        Apply one received advertisement.

        Never raises; a sighting that cannot be processed is dropped.
        """
        if not self._listening:
            logger.debug("Sighting ignored, tracker is not listening")
            return

        try:
            # Expire first, then apply
            self.sweep()

            record = self._derive_record(sighting)
            if record is None:
                return

            events = self._call(self._apply, record)
        except TrackerClosedError:
            logger.debug("Sighting ignored, tracker is closed")
            return
        except Exception as e:
            logger.warning(f"Failed to process sighting: {e}")
            return

        self._dispatch(events)

    def _derive_record(self, sighting: Sighting) -> Optional[DeviceRecord]:
        """Build the candidate record, running the source lookup if any."""
        info: Optional[DeviceInfo] = None

        lookup = getattr(self._source, 'lookup', None) if self._enrich else None
        if lookup is not None:
            try:
                info = lookup(sighting.address)
            except DeviceLookupError as e:
                logger.debug(f"Lookup failed for {format_address(sighting.address)}: {e}")
                return None

            if info is None:
                logger.debug(f"Device {format_address(sighting.address)} vanished during lookup")
                return None

        return DeviceRecord.from_sighting(sighting, info)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def sweep(
        self,
        now: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> list[DeviceRecord]:
        """
        Remove devices not heard from within the timeout.

        Args:
            now: Current time on the tracker clock (defaults to the clock).
            timeout: Silence allowed in seconds (defaults to heartbeat_timeout).

        Returns:
            The evicted records, each also announced as DEVICE_TIMED_OUT.
        """
        evicted = self._call(self._evict, self._cutoff(now, timeout))
        self._dispatch([TrackerEvent(EventKind.DEVICE_TIMED_OUT, d) for d in evicted])
        return evicted

    def current_devices(self) -> tuple[DeviceRecord, ...]:
        """Sweep, then return a point-in-time copy of all tracked devices."""
        evicted, devices = self._call(self._snapshot, self._cutoff(None, None))
        self._dispatch([TrackerEvent(EventKind.DEVICE_TIMED_OUT, d) for d in evicted])
        return devices

    def get_device(self, address: Union[int, str]) -> Optional[DeviceRecord]:
        """Sweep, then return the record for one address if tracked."""
        key = parse_address(address)
        evicted, device = self._call(self._find, key, self._cutoff(None, None))
        self._dispatch([TrackerEvent(EventKind.DEVICE_TIMED_OUT, d) for d in evicted])
        return device

    def pair_device(self, address: Union[int, str]) -> bool:
        """
        Ask the advertisement source to pair with a device.

        Raises:
            TrackerStateError: If the tracker is not listening or the source
                cannot pair.
        """
        key = parse_address(address)

        if not self._listening:
            raise TrackerStateError("Cannot pair before the tracker is started")

        pair = getattr(self._source, 'pair', None)
        if pair is None:
            raise TrackerStateError("Advertisement source does not support pairing")

        return pair(key)

    def _cutoff(self, now: Optional[float], timeout: Optional[float]) -> float:
        if now is None:
            now = self._clock()
        if timeout is None:
            timeout = self._heartbeat_timeout
        return now - timeout

    # =========================================================================
    # REGISTRY WORKER
    # =========================================================================

    def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a registry command on the worker thread and wait for it."""
        future: Future = Future()
        with self._submit_lock:
            if self._closed:
                raise TrackerClosedError("Discovery tracker is closed")
            self._commands.put((func, args, future))
        return future.result(timeout=REGISTRY_CALL_TIMEOUT)

    def _run(self) -> None:
        while True:
            command = self._commands.get()
            if command is None:
                break

            func, args, future = command
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(func(*args))
            except Exception as e:
                future.set_exception(e)

        self._devices.clear()

    def _apply(self, record: DeviceRecord) -> list[TrackerEvent]:
        """Classify and store one candidate record."""
        if not self._listening:
            return []

        previous = self._devices.get(record.address)
        is_new = previous is None
        name_changed = (
            previous is not None
            and bool(previous.name)
            and bool(record.name)
            and record.name != previous.name
        )

        # Keep a known name when this advertisement flavour omits it
        if not record.name and previous is not None and previous.name:
            record = record.with_name(previous.name)

        self._devices[record.address] = record

        events = [TrackerEvent(EventKind.DEVICE_DISCOVERED, record)]
        if name_changed:
            events.append(TrackerEvent(EventKind.NAME_CHANGED, record))
        if is_new:
            events.append(TrackerEvent(EventKind.NEW_DEVICE_DISCOVERED, record))
        return events

    def _evict(self, cutoff: float) -> list[DeviceRecord]:
        stale = [
            address for address, device in self._devices.items()
            if device.last_seen < cutoff
        ]
        evicted = [self._devices.pop(address) for address in stale]
        for device in evicted:
            logger.debug(f"Device timed out: {device}")
        return evicted

    def _snapshot(self, cutoff: float) -> tuple[list[DeviceRecord], tuple[DeviceRecord, ...]]:
        evicted = self._evict(cutoff)
        return evicted, tuple(self._devices.values())

    def _find(self, address: int, cutoff: float) -> tuple[list[DeviceRecord], Optional[DeviceRecord]]:
        evicted = self._evict(cutoff)
        return evicted, self._devices.get(address)

    def _clear(self) -> None:
        self._devices.clear()

    def _count(self) -> int:
        return len(self._devices)
