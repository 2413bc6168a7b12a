"""
Discovery API - control and inspect the Bluetooth discovery tracker.

Provides REST endpoints and SSE streaming for the live device registry.
"""

from __future__ import annotations

import logging
import queue
from typing import Generator

from flask import Blueprint, Response, current_app, jsonify, request

from blewatch.bluetooth import (
    AdvertisementSourceError,
    DeviceRecord,
    DiscoveryTracker,
    TrackerEvent,
    TrackerStateError,
    parse_address,
)
from blewatch.bluetooth.constants import SSE_PING_INTERVAL
from blewatch.sse import format_sse

logger = logging.getLogger('blewatch.discovery')

TRACKER_EXTENSION = 'blewatch.tracker'

# Blueprint
discovery_bp = Blueprint('discovery', __name__, url_prefix='/api/discovery')

SORT_KEYS = {
    'last_seen': lambda d: d.last_seen,
    'rssi': lambda d: d.rssi,
    'name': lambda d: (d.name or '').lower(),
    'address': lambda d: d.address,
}


def get_tracker() -> DiscoveryTracker:
    """Get the tracker registered on the current application."""
    return current_app.extensions[TRACKER_EXTENSION]


def _parse_address_arg(address: str) -> int | None:
    try:
        return parse_address(address)
    except ValueError:
        return None


def _sort_devices(devices: tuple[DeviceRecord, ...], sort_by: str, descending: bool) -> list[DeviceRecord]:
    key = SORT_KEYS.get(sort_by, SORT_KEYS['last_seen'])
    return sorted(devices, key=key, reverse=descending)


# =============================================================================
# API ENDPOINTS
# =============================================================================


@discovery_bp.route('/start', methods=['POST'])
def start_listening():
    """
    Start listening for advertisements.

    Returns:
        JSON with tracker status.
    """
    tracker = get_tracker()

    if tracker.is_listening:
        return jsonify({'status': 'already_listening'})

    try:
        tracker.start()
    except AdvertisementSourceError as e:
        logger.error(f"Failed to start discovery: {e}")
        return jsonify({'status': 'error', 'error': str(e)}), 503

    return jsonify({'status': 'started'})


@discovery_bp.route('/stop', methods=['POST'])
def stop_listening():
    """
    Stop listening. Clears every tracked device.

    Returns:
        JSON with status.
    """
    get_tracker().stop()
    return jsonify({'status': 'stopped'})


@discovery_bp.route('/status', methods=['GET'])
def get_status():
    """
    Get tracker status.

    Returns:
        JSON with listening state, heartbeat timeout and device count.
    """
    tracker = get_tracker()
    return jsonify({
        'listening': tracker.is_listening,
        'heartbeat_timeout': tracker.heartbeat_timeout,
        'device_count': len(tracker.current_devices()),
    })


@discovery_bp.route('/heartbeat', methods=['POST'])
def set_heartbeat():
    """
    Change the heartbeat timeout.

    Request JSON:
        - timeout: Seconds of silence before a device times out

    Returns:
        JSON with the new timeout.
    """
    data = request.get_json(silent=True) or {}
    tracker = get_tracker()

    try:
        tracker.heartbeat_timeout = float(data.get('timeout'))
    except (TypeError, ValueError):
        return jsonify({'error': 'timeout must be a positive number'}), 400

    return jsonify({'status': 'success', 'heartbeat_timeout': tracker.heartbeat_timeout})


@discovery_bp.route('/devices', methods=['GET'])
def list_devices():
    """
    List currently visible devices.

    Query parameters:
        - sort: Sort field ('last_seen', 'rssi', 'name', 'address')
        - order: Sort order ('asc', 'desc')

    Returns:
        JSON array of devices.
    """
    sort_by = request.args.get('sort', 'last_seen')
    sort_desc = request.args.get('order', 'desc').lower() != 'asc'

    devices = _sort_devices(get_tracker().current_devices(), sort_by, sort_desc)

    return jsonify({
        'count': len(devices),
        'devices': [d.to_dict() for d in devices],
    })


@discovery_bp.route('/devices/<address>', methods=['GET'])
def get_device(address: str):
    """
    Get one device by address.

    Path parameters:
        - address: Bluetooth address (AA:BB:CC:DD:EE:FF)

    Returns:
        JSON with device details.
    """
    key = _parse_address_arg(address)
    if key is None:
        return jsonify({'error': 'Invalid Bluetooth address'}), 400

    device = get_tracker().get_device(key)
    if not device:
        return jsonify({'error': 'Device not found'}), 404

    return jsonify(device.to_dict())


@discovery_bp.route('/devices/<address>/pair', methods=['POST'])
def pair_device(address: str):
    """
    Ask the advertisement source to pair with a device.

    Returns:
        JSON with pairing result.
    """
    key = _parse_address_arg(address)
    if key is None:
        return jsonify({'error': 'Invalid Bluetooth address'}), 400

    try:
        paired = get_tracker().pair_device(key)
    except TrackerStateError as e:
        return jsonify({'status': 'error', 'error': str(e)}), 409

    return jsonify({'status': 'paired' if paired else 'failed'})


@discovery_bp.route('/sweep', methods=['POST'])
def sweep():
    """
    Evict devices that have gone quiet.

    Request JSON:
        - timeout: Override of the heartbeat timeout in seconds (optional)

    Returns:
        JSON with the evicted devices.
    """
    data = request.get_json(silent=True) or {}
    timeout = data.get('timeout')

    if timeout is not None:
        try:
            timeout = float(timeout)
        except (TypeError, ValueError):
            return jsonify({'error': 'timeout must be a number'}), 400

    evicted = get_tracker().sweep(timeout=timeout)

    return jsonify({
        'status': 'success',
        'evicted_count': len(evicted),
        'evicted': [d.to_dict() for d in evicted],
    })


@discovery_bp.route('/stream', methods=['GET'])
def stream_events():
    """
    SSE event stream of tracker events.

    Returns:
        Server-Sent Events stream.
    """
    tracker = get_tracker()
    events: queue.Queue = queue.Queue()
    unsubscribe = tracker.subscribe(events.put)

    def event_generator() -> Generator[str, None, None]:
        try:
            while True:
                try:
                    event: TrackerEvent = events.get(timeout=SSE_PING_INTERVAL)
                except queue.Empty:
                    yield format_sse({}, event='ping')
                    continue
                yield format_sse(event.to_dict(), event=event.kind.value)
        finally:
            unsubscribe()

    return Response(
        event_generator(),
        mimetype='text/event-stream',
        headers={
            'Cache-Control': 'no-cache',
            'Connection': 'keep-alive',
            'X-Accel-Buffering': 'no',
        }
    )
