"""
Application wiring for blewatch.

Builds a discovery tracker from configuration and exposes it over Flask.
"""

from __future__ import annotations

import logging
from typing import Optional

from flask import Flask

from blewatch.bluetooth import DiscoveryTracker
from blewatch.config import WatchConfig
from blewatch.routes import register_blueprints
from blewatch.routes.discovery import TRACKER_EXTENSION

logger = logging.getLogger('blewatch.app')


def build_tracker(config: WatchConfig) -> DiscoveryTracker:
    """Create a tracker fed by the bleak advertisement source."""
    from blewatch.bluetooth.bleak_source import BleakAdvertisementSource

    source = BleakAdvertisementSource(
        scanning_mode=config.scanning_mode,
        adapter=config.adapter,
    )
    return DiscoveryTracker(
        source=source,
        heartbeat_timeout=config.heartbeat_timeout,
        sweep_interval=config.sweep_interval,
        enrich=config.enrich,
    )


def attach_mqtt(tracker: DiscoveryTracker, config: WatchConfig):
    """Start forwarding tracker events to MQTT when enabled."""
    if not config.mqtt.enabled:
        return None

    from blewatch.mqtt import MqttEventPublisher

    publisher = MqttEventPublisher(config.mqtt)
    publisher.attach(tracker)
    publisher.connect()
    return publisher


def create_app(
    tracker: Optional[DiscoveryTracker] = None,
    config: Optional[WatchConfig] = None,
) -> Flask:
    """
    Create the Flask application.

    Args:
        tracker: Tracker to expose. Built from ``config`` when omitted.
        config: Configuration, read from the environment when omitted.
    """
    if config is None:
        config = WatchConfig.from_env()
    if tracker is None:
        tracker = build_tracker(config)
        attach_mqtt(tracker, config)

    app = Flask(__name__)
    app.extensions[TRACKER_EXTENSION] = tracker
    register_blueprints(app)

    logger.info("blewatch application created")
    return app
