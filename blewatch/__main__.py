"""
Command line entry point.

Usage:
    python -m blewatch watch [--timeout SECONDS] [--passive]
    python -m blewatch serve [--host HOST] [--port PORT]
"""

from __future__ import annotations

import argparse
import logging
import sys

from blewatch.app import attach_mqtt, build_tracker, create_app
from blewatch.bluetooth import (
    AdvertisementSourceError,
    DiscoveryTracker,
    EventKind,
    TrackerEvent,
    TrackerStateError,
)
from blewatch.bluetooth.constants import SCANNING_MODE_PASSIVE
from blewatch.config import WatchConfig

logger = logging.getLogger('blewatch')

EVENT_LABELS = {
    EventKind.STARTED: 'Started listening',
    EventKind.STOPPED: 'Stopped listening',
    EventKind.NEW_DEVICE_DISCOVERED: 'New device',
    EventKind.NAME_CHANGED: 'Device name changed',
    EventKind.DEVICE_TIMED_OUT: 'Device timed out',
}


def print_event(event: TrackerEvent) -> None:
    """Print lifecycle and transition events, skipping plain re-sightings."""
    label = EVENT_LABELS.get(event.kind)
    if label is None:
        return
    if event.device is None:
        print(label)
    else:
        print(f"{label}: {event.device}")


def run_watch(tracker: DiscoveryTracker) -> int:
    """
    Interactive console watcher.

    Enter lists the visible devices, ``p <address>`` pairs with one,
    ``q`` quits.
    """
    tracker.subscribe(print_event)

    try:
        tracker.start()
    except AdvertisementSourceError as e:
        print(f"Cannot start discovery: {e}", file=sys.stderr)
        return 1

    try:
        for line in sys.stdin:
            command = line.strip()

            if not command:
                devices = tracker.current_devices()
                print(f"{len(devices)} devices....")
                for device in devices:
                    print(device)

            elif command.startswith('p '):
                address = command[2:].strip()
                try:
                    paired = tracker.pair_device(address)
                except (TrackerStateError, ValueError) as e:
                    print(f"Failed to pair with {address}: {e}")
                    continue
                print("Pairing successful" if paired else "Pairing failed")

            elif command == 'q':
                break
    except KeyboardInterrupt:
        pass
    finally:
        tracker.close()

    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog='blewatch', description='Bluetooth LE discovery tracker')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    watch = subparsers.add_parser('watch', help='Print discovery events to the console')
    watch.add_argument('--timeout', type=float, help='Heartbeat timeout in seconds')
    watch.add_argument('--passive', action='store_true', help='Use passive scanning')
    watch.add_argument('--adapter', help='Bluetooth adapter (BlueZ only)')

    serve = subparsers.add_parser('serve', help='Serve the HTTP API')
    serve.add_argument('--host', help='Bind address')
    serve.add_argument('--port', type=int, help='Port')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    overrides = {}
    if args.command == 'watch':
        if args.timeout is not None:
            overrides['heartbeat_timeout'] = args.timeout
        if args.passive:
            overrides['scanning_mode'] = SCANNING_MODE_PASSIVE
        if args.adapter:
            overrides['adapter'] = args.adapter
    else:
        if args.host:
            overrides['http_host'] = args.host
        if args.port:
            overrides['http_port'] = args.port

    config = WatchConfig.from_env(**overrides)

    if args.command == 'watch':
        tracker = build_tracker(config)
        publisher = attach_mqtt(tracker, config)
        try:
            return run_watch(tracker)
        finally:
            if publisher is not None:
                publisher.shutdown()

    app = create_app(config=config)
    logger.info(f"Serving on http://{config.http_host}:{config.http_port}")
    app.run(host=config.http_host, port=config.http_port, threaded=True)
    return 0


if __name__ == '__main__':
    sys.exit(main())
