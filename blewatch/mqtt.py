"""
MQTT event publisher for blewatch.

Forwards discovery tracker events to an MQTT broker as JSON. Tracker
observers only enqueue; a background thread drains the queue into the
paho client, and a second thread re-establishes the broker session with
exponential backoff after an unexpected disconnect.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import queue
import threading
from datetime import datetime, timezone
from typing import Callable, NamedTuple, Optional

import paho.mqtt.client as mqtt

from blewatch.bluetooth import DiscoveryTracker, TrackerEvent
from blewatch.bluetooth.constants import (
    DEFAULT_MQTT_KEEPALIVE,
    MQTT_QUEUE_SIZE,
    MQTT_RECONNECT_MAX_DELAY,
    MQTT_RECONNECT_MIN_DELAY,
    MQTT_RECONNECT_MULTIPLIER,
)
from blewatch.config import MqttSettings

logger = logging.getLogger('blewatch.mqtt')

# Session states
DISCONNECTED = 'disconnected'
CONNECTING = 'connecting'
CONNECTED = 'connected'


class QueuedMessage(NamedTuple):
    topic: str
    payload: str
    qos: int


@dataclasses.dataclass
class PublisherStats:
    """Counters reported by ``MqttEventPublisher.stats``."""
    messages_published: int = 0
    messages_failed: int = 0
    reconnect_attempts: int = 0
    last_publish_time: Optional[str] = None


class MqttEventPublisher:
    """
    Publishes tracker events to ``<topic_prefix>/<event kind>``.

    Attach it to a tracker, then call ``connect()``. Events raised while
    the broker is unreachable stay queued (up to ``MQTT_QUEUE_SIZE``) and
    go out once the session is back.
    """

    def __init__(self, settings: MqttSettings):
        self._settings = settings
        self._client: Optional[mqtt.Client] = None
        self._state = DISCONNECTED
        self._queue: queue.Queue = queue.Queue(maxsize=MQTT_QUEUE_SIZE)
        self._shutdown = threading.Event()
        self._drain_thread: Optional[threading.Thread] = None
        self._retry_thread: Optional[threading.Thread] = None
        self._retry_delay = MQTT_RECONNECT_MIN_DELAY
        self._last_error: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._stats = PublisherStats()

    @property
    def is_connected(self) -> bool:
        return self._state == CONNECTED and self._client is not None

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def stats(self) -> dict:
        return dataclasses.asdict(self._stats)

    # =========================================================================
    # TRACKER SIDE
    # =========================================================================

    def attach(self, tracker: DiscoveryTracker) -> None:
        """Subscribe to a tracker's events, replacing any earlier tracker."""
        self.detach()
        self._unsubscribe = tracker.subscribe(self.handle_event)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def topic_for(self, event: TrackerEvent) -> str:
        return f"{self._settings.topic_prefix}/{event.kind.value}"

    def handle_event(self, event: TrackerEvent) -> bool:
        """
        Enqueue one tracker event.

        Runs on the tracker's dispatching thread, so it never touches the
        network.

        Returns:
            False if the queue was full and the event was dropped.
        """
        body = event.to_dict()
        body['@timestamp'] = datetime.now(timezone.utc).isoformat()

        message = QueuedMessage(
            topic=self.topic_for(event),
            payload=json.dumps(body, default=str),
            qos=self._settings.qos,
        )

        try:
            self._queue.put_nowait(message)
        except queue.Full:
            self._stats.messages_failed += 1
            logger.warning(f"Event queue full, dropping {event.kind.value} event")
            return False
        return True

    # =========================================================================
    # BROKER SESSION
    # =========================================================================

    def connect(self) -> bool:
        """
        Open the broker session in the background.

        Returns:
            True once the connection attempt is under way.
        """
        if self._state != DISCONNECTED:
            return True

        settings = self._settings
        self._state = CONNECTING
        self._shutdown.clear()

        try:
            client = mqtt.Client(
                mqtt.CallbackAPIVersion.VERSION2,
                client_id=f"{settings.client_id}_{int(datetime.now().timestamp())}",
                protocol=mqtt.MQTTv311,
            )
            client.on_connect = self._on_connect
            client.on_disconnect = self._on_disconnect
            client.on_publish = self._on_publish

            if settings.username:
                client.username_pw_set(settings.username, settings.password or '')
            if settings.use_tls:
                client.tls_set()

            self._client = client
            logger.info(f"Opening MQTT session with {settings.host}:{settings.port}")
            client.connect_async(settings.host, settings.port, keepalive=DEFAULT_MQTT_KEEPALIVE)
            client.loop_start()
        except Exception as e:
            self._state = DISCONNECTED
            self._last_error = str(e)
            logger.error(f"Cannot reach MQTT broker {settings.host}:{settings.port}: {e}")
            return False

        self._drain_thread = self._spawn(self._drain_thread, self._drain, 'mqtt-publish')
        return True

    def disconnect(self) -> None:
        """Close the broker session and stop the background threads."""
        self._shutdown.set()

        client, self._client = self._client, None
        if client is not None:
            try:
                client.loop_stop()
                client.disconnect()
            except Exception as e:
                logger.warning(f"Error closing MQTT session: {e}")

        self._state = DISCONNECTED

        if self._drain_thread is not None:
            self._drain_thread.join(timeout=2)
            self._drain_thread = None

        logger.info("MQTT session closed")

    def shutdown(self) -> None:
        """Detach from the tracker, close the session, drop pending events."""
        self.detach()
        self.disconnect()

        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
            dropped += 1
        if dropped:
            logger.info(f"Dropped {dropped} unpublished events on shutdown")

    # =========================================================================
    # PAHO CALLBACKS
    # =========================================================================

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            self._state = DISCONNECTED
            self._last_error = str(reason_code)
            logger.error(f"MQTT broker refused connection: {reason_code}")
            return

        self._state = CONNECTED
        self._retry_delay = MQTT_RECONNECT_MIN_DELAY
        self._last_error = None
        logger.info("MQTT session established")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._state = DISCONNECTED

        if not reason_code.is_failure:
            logger.info("MQTT session ended by broker")
            return

        self._last_error = f"Unexpected disconnection ({reason_code})"
        logger.warning(f"Lost MQTT session: {reason_code}")
        if not self._shutdown.is_set():
            self._start_reconnect_thread()

    def _on_publish(self, client, userdata, mid, reason_code=None, properties=None):
        self._stats.messages_published += 1
        self._stats.last_publish_time = datetime.now(timezone.utc).isoformat()

    # =========================================================================
    # BACKGROUND THREADS
    # =========================================================================

    @staticmethod
    def _spawn(current: Optional[threading.Thread], target, name: str) -> threading.Thread:
        if current is not None and current.is_alive():
            return current
        thread = threading.Thread(target=target, daemon=True, name=name)
        thread.start()
        return thread

    def _start_reconnect_thread(self) -> None:
        self._retry_thread = self._spawn(self._retry_thread, self._reconnect, 'mqtt-reconnect')

    def _drain(self) -> None:
        """Publish queued events while the session is up."""
        pending: Optional[QueuedMessage] = None

        while not self._shutdown.is_set():
            if pending is None:
                try:
                    pending = self._queue.get(timeout=1)
                except queue.Empty:
                    continue

            client = self._client
            if not self.is_connected or client is None:
                # Hold the message until the session is back
                self._shutdown.wait(0.1)
                continue

            try:
                result = client.publish(pending.topic, pending.payload, qos=pending.qos)
                if result.rc != mqtt.MQTT_ERR_SUCCESS:
                    self._stats.messages_failed += 1
                    logger.warning(f"Publish to {pending.topic} failed: rc={result.rc}")
            except Exception as e:
                self._stats.messages_failed += 1
                logger.error(f"Publish to {pending.topic} raised: {e}")
            pending = None

    def _reconnect(self) -> None:
        """Retry the broker session with exponential backoff."""
        while not self._shutdown.is_set() and self._state == DISCONNECTED:
            self._stats.reconnect_attempts += 1
            logger.info(f"Reconnecting to MQTT broker in {self._retry_delay}s")

            if self._shutdown.wait(self._retry_delay):
                return

            try:
                if self._client is not None:
                    self._client.reconnect()
                    self._state = CONNECTING
                else:
                    self.connect()
            except Exception as e:
                logger.warning(f"MQTT reconnect failed: {e}")
                self._retry_delay = min(
                    self._retry_delay * MQTT_RECONNECT_MULTIPLIER,
                    MQTT_RECONNECT_MAX_DELAY,
                )
