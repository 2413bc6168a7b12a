"""
Bluetooth discovery constants and defaults.
"""

from __future__ import annotations

# =============================================================================
# TRACKER SETTINGS
# =============================================================================

# Seconds of silence after which a device is considered gone
DEFAULT_HEARTBEAT_TIMEOUT = 30.0

# Interval of the background eviction sweep while listening (seconds)
DEFAULT_SWEEP_INTERVAL = 1.0

# How long a caller waits on the registry worker before giving up (seconds)
REGISTRY_CALL_TIMEOUT = 10.0

# Thread names
REGISTRY_THREAD_NAME = 'discovery-registry'
SWEEP_THREAD_NAME = 'discovery-sweep'

# Placeholder used when rendering an unnamed device
UNNAMED_DEVICE = '[No Name]'

# =============================================================================
# ADDRESS SETTINGS
# =============================================================================

# Bluetooth hardware addresses are 48 bits wide
ADDRESS_BITS = 48
ADDRESS_MAX = (1 << ADDRESS_BITS) - 1

# =============================================================================
# EVENT KINDS
# =============================================================================

EVENT_STARTED = 'started'
EVENT_STOPPED = 'stopped'
EVENT_DEVICE_DISCOVERED = 'device_discovered'
EVENT_NEW_DEVICE_DISCOVERED = 'new_device_discovered'
EVENT_NAME_CHANGED = 'name_changed'
EVENT_DEVICE_TIMED_OUT = 'device_timed_out'

# =============================================================================
# BLEAK SOURCE SETTINGS
# =============================================================================

SCANNING_MODE_ACTIVE = 'active'
SCANNING_MODE_PASSIVE = 'passive'
DEFAULT_SCANNING_MODE = SCANNING_MODE_ACTIVE

# Seconds to wait for the scanner loop to come up or shut down
BLEAK_START_TIMEOUT = 10.0
BLEAK_STOP_TIMEOUT = 5.0

# Seconds allowed for a device-info lookup (connect + read state)
BLEAK_LOOKUP_TIMEOUT = 10.0

# Seconds allowed for a pairing attempt
BLEAK_PAIR_TIMEOUT = 30.0

# =============================================================================
# MQTT SETTINGS
# =============================================================================

DEFAULT_MQTT_HOST = 'localhost'
DEFAULT_MQTT_PORT = 1883
DEFAULT_MQTT_CLIENT_ID = 'blewatch'
DEFAULT_MQTT_TOPIC_PREFIX = 'blewatch'
DEFAULT_MQTT_QOS = 1
DEFAULT_MQTT_KEEPALIVE = 60
MQTT_QUEUE_SIZE = 10000

# Reconnection backoff (seconds)
MQTT_RECONNECT_MIN_DELAY = 1
MQTT_RECONNECT_MAX_DELAY = 60
MQTT_RECONNECT_MULTIPLIER = 2

# =============================================================================
# HTTP SETTINGS
# =============================================================================

DEFAULT_HTTP_HOST = '127.0.0.1'
DEFAULT_HTTP_PORT = 5000

# Seconds between SSE keepalive pings when no events arrive
SSE_PING_INTERVAL = 15.0
