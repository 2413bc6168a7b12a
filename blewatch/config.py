"""Runtime configuration for blewatch."""

from __future__ import annotations

import dataclasses
import os
from typing import Any, Optional

from blewatch.bluetooth.constants import (
    DEFAULT_HEARTBEAT_TIMEOUT,
    DEFAULT_HTTP_HOST,
    DEFAULT_HTTP_PORT,
    DEFAULT_MQTT_CLIENT_ID,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_QOS,
    DEFAULT_MQTT_TOPIC_PREFIX,
    DEFAULT_SCANNING_MODE,
    DEFAULT_SWEEP_INTERVAL,
)


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_interval(value: str) -> Optional[float]:
    """Parse a sweep interval; ``off``/``none``/``0`` disable the timer."""
    normalized = value.strip().lower()
    if normalized in {"", "off", "none", "0"}:
        return None
    return float(normalized)


@dataclasses.dataclass(frozen=True)
class MqttSettings:
    """Broker connection settings for the MQTT event publisher."""

    enabled: bool = False
    host: str = DEFAULT_MQTT_HOST
    port: int = DEFAULT_MQTT_PORT
    client_id: str = DEFAULT_MQTT_CLIENT_ID
    topic_prefix: str = DEFAULT_MQTT_TOPIC_PREFIX
    qos: int = DEFAULT_MQTT_QOS
    username: str | None = None
    password: str | None = None
    use_tls: bool = False


@dataclasses.dataclass(frozen=True)
class WatchConfig:
    """Tracker, scanner and surface configuration.

    Parameters
    ----------
    heartbeat_timeout : float
        Seconds of silence after which a device is evicted. Defaults to 30.
    sweep_interval : float or None
        Seconds between background sweeps while listening. ``None``
        disables the timer; sweeps then happen on reads and sightings only.
    scanning_mode : str
        ``"active"`` or ``"passive"`` BLE scanning.
    adapter : str or None
        Bluetooth adapter name (BlueZ only, e.g. ``"hci1"``).
    enrich : bool
        Run the device-info lookup for every sighting.
    http_host : str
        Bind address for ``blewatch serve``.
    http_port : int
        Port for ``blewatch serve``.
    mqtt : MqttSettings
        MQTT event publisher settings.
    """

    heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT
    sweep_interval: float | None = DEFAULT_SWEEP_INTERVAL
    scanning_mode: str = DEFAULT_SCANNING_MODE
    adapter: str | None = None
    enrich: bool = True
    http_host: str = DEFAULT_HTTP_HOST
    http_port: int = DEFAULT_HTTP_PORT
    mqtt: MqttSettings = dataclasses.field(default_factory=MqttSettings)

    def __post_init__(self) -> None:
        if self.heartbeat_timeout <= 0:
            raise ValueError(f"heartbeat_timeout must be positive, got {self.heartbeat_timeout}")
        if self.sweep_interval is not None and self.sweep_interval <= 0:
            raise ValueError(f"sweep_interval must be positive, got {self.sweep_interval}")

    @classmethod
    def from_env(cls, **overrides: Any) -> WatchConfig:
        """Create configuration from ``BLEWATCH_*`` environment variables.

        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        WatchConfig
            Populated configuration.
        """
        env = os.environ

        mqtt_kwargs: dict[str, Any] = {}
        _ENV_MQTT_MAP = {
            "BLEWATCH_MQTT_HOST": "host",
            "BLEWATCH_MQTT_CLIENT_ID": "client_id",
            "BLEWATCH_MQTT_TOPIC_PREFIX": "topic_prefix",
            "BLEWATCH_MQTT_USERNAME": "username",
            "BLEWATCH_MQTT_PASSWORD": "password",
        }
        for env_key, field_name in _ENV_MQTT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                mqtt_kwargs[field_name] = val

        port_env = env.get("BLEWATCH_MQTT_PORT")
        if port_env is not None:
            mqtt_kwargs["port"] = int(port_env)
        qos_env = env.get("BLEWATCH_MQTT_QOS")
        if qos_env is not None:
            mqtt_kwargs["qos"] = int(qos_env)
        mqtt_kwargs["enabled"] = _env_bool(env.get("BLEWATCH_MQTT_ENABLED"), False)
        mqtt_kwargs["use_tls"] = _env_bool(env.get("BLEWATCH_MQTT_USE_TLS"), False)

        mqtt_overrides = overrides.pop("mqtt", None)
        if isinstance(mqtt_overrides, dict):
            mqtt_kwargs.update(mqtt_overrides)
        elif isinstance(mqtt_overrides, MqttSettings):
            mqtt_kwargs = dataclasses.asdict(mqtt_overrides)

        config_kwargs: dict[str, Any] = {"mqtt": MqttSettings(**mqtt_kwargs)}

        timeout_env = env.get("BLEWATCH_HEARTBEAT_TIMEOUT")
        if timeout_env is not None:
            config_kwargs["heartbeat_timeout"] = float(timeout_env)

        interval_env = env.get("BLEWATCH_SWEEP_INTERVAL")
        if interval_env is not None:
            config_kwargs["sweep_interval"] = _env_interval(interval_env)

        mode_env = env.get("BLEWATCH_SCANNING_MODE")
        if mode_env is not None:
            config_kwargs["scanning_mode"] = mode_env.strip().lower()

        adapter_env = env.get("BLEWATCH_ADAPTER")
        if adapter_env:
            config_kwargs["adapter"] = adapter_env

        config_kwargs["enrich"] = _env_bool(env.get("BLEWATCH_ENRICH"), True)

        host_env = env.get("BLEWATCH_HTTP_HOST")
        if host_env is not None:
            config_kwargs["http_host"] = host_env
        http_port_env = env.get("BLEWATCH_HTTP_PORT")
        if http_port_env is not None:
            config_kwargs["http_port"] = int(http_port_env)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
