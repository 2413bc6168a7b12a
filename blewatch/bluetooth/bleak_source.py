"""
Advertisement source backed by the bleak library.

Runs a BleakScanner on a private asyncio loop thread and hands each
advertisement to the tracker from a separate delivery thread, so tracker
work (including device-info lookups that go back through the loop) never
blocks the scanner.

Works on Linux (BlueZ) and Windows. macOS reports CoreBluetooth UUIDs
instead of hardware addresses; those advertisements are skipped.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
import time
from typing import Callable, Optional

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from .address import format_address, parse_address
from .constants import (
    BLEAK_LOOKUP_TIMEOUT,
    BLEAK_PAIR_TIMEOUT,
    BLEAK_START_TIMEOUT,
    BLEAK_STOP_TIMEOUT,
    DEFAULT_SCANNING_MODE,
    SCANNING_MODE_ACTIVE,
    SCANNING_MODE_PASSIVE,
)
from .exceptions import AdvertisementSourceError, DeviceLookupError
from .models import DeviceInfo, Sighting

logger = logging.getLogger('blewatch.bleak')


class BleakAdvertisementSource:
    """
    Cross-platform BLE advertisement source using bleak.

    Implements the tracker's source protocol: ``start``/``stop``, plus the
    optional ``lookup`` and ``pair`` operations.
    """

    def __init__(
        self,
        scanning_mode: str = DEFAULT_SCANNING_MODE,
        adapter: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if scanning_mode not in (SCANNING_MODE_ACTIVE, SCANNING_MODE_PASSIVE):
            raise ValueError(f"Invalid scanning mode: {scanning_mode}")

        self._scanning_mode = scanning_mode
        self._adapter = adapter
        self._clock = clock

        self._on_sighting: Optional[Callable[[Sighting], None]] = None
        self._on_stopped: Optional[Callable[[], None]] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._scanner: Optional[BleakScanner] = None

        self._sightings: queue.Queue = queue.Queue()
        self._delivery_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._is_scanning = False

    @property
    def is_scanning(self) -> bool:
        return self._is_scanning

    def start(
        self,
        on_sighting: Callable[[Sighting], None],
        on_stopped: Callable[[], None],
    ) -> None:
        """
        Start scanning.

        Raises:
            AdvertisementSourceError: If no adapter is available, it is
                powered off, or access is denied.
        """
        if self._is_scanning:
            return

        self._on_sighting = on_sighting
        self._on_stopped = on_stopped
        self._stop_event.clear()

        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._run_loop,
            args=(self._loop,),
            daemon=True,
            name='bleak-loop',
        )
        self._loop_thread.start()

        future = asyncio.run_coroutine_threadsafe(self._start_scanner(), self._loop)
        try:
            future.result(timeout=BLEAK_START_TIMEOUT)
        except Exception as e:
            logger.error(f"Failed to start bleak scanner: {e}")
            self._stop_event.set()
            self._shutdown_loop()
            raise AdvertisementSourceError(f"Bluetooth scanner unavailable: {e}") from e

        self._delivery_thread = threading.Thread(
            target=self._deliver_loop,
            daemon=True,
            name='bleak-delivery',
        )
        self._delivery_thread.start()
        self._is_scanning = True
        logger.info(f"Bleak scanner started ({self._scanning_mode} mode)")

    def stop(self) -> None:
        """Stop scanning and release the loop and delivery threads."""
        if not self._is_scanning:
            return

        self._stop_event.set()
        self._is_scanning = False

        if self._loop is not None and self._scanner is not None:
            future = asyncio.run_coroutine_threadsafe(self._stop_scanner(), self._loop)
            try:
                future.result(timeout=BLEAK_STOP_TIMEOUT)
            except Exception as e:
                logger.warning(f"Error stopping bleak scanner: {e}")

        self._shutdown_loop()

        if self._delivery_thread and self._delivery_thread is not threading.current_thread():
            self._delivery_thread.join(timeout=2.0)
        self._delivery_thread = None

        # Drop anything still queued from this session
        while not self._sightings.empty():
            try:
                self._sightings.get_nowait()
            except queue.Empty:
                break

        logger.info("Bleak scanner stopped")

    def lookup(self, address: int) -> Optional[DeviceInfo]:
        """
        Resolve extra device state from the scanner's device cache.

        Returns:
            DeviceInfo, or None if the scanner no longer knows the device.

        Raises:
            DeviceLookupError: If the lookup cannot be performed.
        """
        loop = self._loop
        if loop is None or self._scanner is None:
            raise DeviceLookupError("Scanner is not running", address=address)

        future = asyncio.run_coroutine_threadsafe(self._resolve(address), loop)
        try:
            return future.result(timeout=BLEAK_LOOKUP_TIMEOUT)
        except Exception as e:
            raise DeviceLookupError(
                f"Lookup failed for {format_address(address)}: {e}",
                address=address,
            ) from e

    def pair(self, address: int) -> bool:
        """
        Connect to a device and request pairing.

        Returns:
            True if the platform reported the pairing as successful.
        """
        loop = self._loop
        if loop is None:
            logger.error("Cannot pair, scanner loop is not running")
            return False

        future = asyncio.run_coroutine_threadsafe(self._pair(address), loop)
        try:
            paired = future.result(timeout=BLEAK_PAIR_TIMEOUT)
        except Exception as e:
            logger.error(f"Pairing with {format_address(address)} failed: {e}")
            return False

        if paired:
            logger.info(f"Paired with {format_address(address)}")
        else:
            logger.warning(f"Pairing with {format_address(address)} was rejected")
        return paired

    # =========================================================================
    # LOOP THREAD
    # =========================================================================

    def _run_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        except Exception as e:
            logger.error(f"Bleak loop error: {e}")
        finally:
            loop.close()
            if not self._stop_event.is_set():
                self._handle_unexpected_stop()

    def _shutdown_loop(self) -> None:
        loop = self._loop
        thread = self._loop_thread
        self._loop = None
        self._loop_thread = None
        self._scanner = None

        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(loop.stop)
        if thread and thread is not threading.current_thread():
            thread.join(timeout=2.0)

    def _handle_unexpected_stop(self) -> None:
        logger.warning("Bleak scanner stopped unexpectedly")
        self._stop_event.set()
        self._is_scanning = False
        if self._on_stopped:
            try:
                self._on_stopped()
            except Exception as e:
                logger.error(f"Error in stopped callback: {e}")

    async def _start_scanner(self) -> None:
        kwargs = {}
        if self._adapter:
            kwargs['adapter'] = self._adapter

        scanner = BleakScanner(
            detection_callback=self._on_detection,
            scanning_mode=self._scanning_mode,
            **kwargs,
        )
        await scanner.start()
        self._scanner = scanner

    async def _stop_scanner(self) -> None:
        scanner = self._scanner
        if scanner is not None:
            await scanner.stop()

    async def _resolve(self, address: int) -> Optional[DeviceInfo]:
        scanner = self._scanner
        if scanner is None:
            return None

        wanted = format_address(address)
        for key, (device, adv_data) in scanner.discovered_devices_and_advertisement_data.items():
            if key.upper() == wanted:
                return self._device_info(device, adv_data)
        return None

    async def _pair(self, address: int) -> bool:
        async with BleakClient(format_address(address)) as client:
            result = await client.pair()
        # Newer bleak releases return None and raise on failure
        return result is not False

    # =========================================================================
    # CONVERSION
    # =========================================================================

    def _on_detection(self, device: BLEDevice, adv_data: AdvertisementData) -> None:
        """Scanner callback, runs on the loop thread."""
        if self._stop_event.is_set():
            return

        try:
            sighting = self._convert(device, adv_data)
        except (BleakError, ValueError) as e:
            logger.debug(f"Skipping advertisement from {device.address}: {e}")
            return

        self._sightings.put(sighting)

    def _convert(self, device: BLEDevice, adv_data: AdvertisementData) -> Sighting:
        return Sighting(
            address=parse_address(device.address),
            rssi=adv_data.rssi,
            timestamp=self._clock(),
            name=adv_data.local_name or device.name or None,
        )

    @staticmethod
    def _device_info(device: BLEDevice, adv_data: AdvertisementData) -> DeviceInfo:
        """Build DeviceInfo, reading BlueZ properties where present."""
        connected = None
        paired = None
        device_id = None

        details = device.details
        if isinstance(details, dict):
            device_id = details.get('path')
            props = details.get('props') or {}
            if 'Connected' in props:
                connected = bool(props['Connected'])
            if 'Paired' in props:
                paired = bool(props['Paired'])

        return DeviceInfo(
            name=adv_data.local_name or device.name or None,
            connected=connected,
            paired=paired,
            device_id=device_id,
        )

    # =========================================================================
    # DELIVERY THREAD
    # =========================================================================

    def _deliver_loop(self) -> None:
        """Hand queued sightings to the tracker one at a time."""
        while not self._stop_event.is_set():
            try:
                sighting = self._sightings.get(timeout=0.5)
            except queue.Empty:
                continue

            if self._stop_event.is_set() or self._on_sighting is None:
                break

            try:
                self._on_sighting(sighting)
            except Exception as e:
                logger.error(f"Error delivering sighting: {e}")
