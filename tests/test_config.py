"""Tests for environment-driven configuration."""

import pytest

from blewatch.config import MqttSettings, WatchConfig

ENV_KEYS = [
    'BLEWATCH_HEARTBEAT_TIMEOUT',
    'BLEWATCH_SWEEP_INTERVAL',
    'BLEWATCH_SCANNING_MODE',
    'BLEWATCH_ADAPTER',
    'BLEWATCH_ENRICH',
    'BLEWATCH_HTTP_HOST',
    'BLEWATCH_HTTP_PORT',
    'BLEWATCH_MQTT_ENABLED',
    'BLEWATCH_MQTT_HOST',
    'BLEWATCH_MQTT_PORT',
    'BLEWATCH_MQTT_CLIENT_ID',
    'BLEWATCH_MQTT_TOPIC_PREFIX',
    'BLEWATCH_MQTT_QOS',
    'BLEWATCH_MQTT_USERNAME',
    'BLEWATCH_MQTT_PASSWORD',
    'BLEWATCH_MQTT_USE_TLS',
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    config = WatchConfig.from_env()

    assert config.heartbeat_timeout == 30.0
    assert config.sweep_interval == 1.0
    assert config.scanning_mode == 'active'
    assert config.adapter is None
    assert config.enrich is True
    assert config.http_port == 5000
    assert config.mqtt.enabled is False
    assert config.mqtt.topic_prefix == 'blewatch'


def test_tracker_settings_from_env(monkeypatch):
    monkeypatch.setenv('BLEWATCH_HEARTBEAT_TIMEOUT', '12.5')
    monkeypatch.setenv('BLEWATCH_SWEEP_INTERVAL', '0.5')
    monkeypatch.setenv('BLEWATCH_SCANNING_MODE', 'Passive')
    monkeypatch.setenv('BLEWATCH_ADAPTER', 'hci1')
    monkeypatch.setenv('BLEWATCH_ENRICH', 'no')

    config = WatchConfig.from_env()

    assert config.heartbeat_timeout == 12.5
    assert config.sweep_interval == 0.5
    assert config.scanning_mode == 'passive'
    assert config.adapter == 'hci1'
    assert config.enrich is False


@pytest.mark.parametrize('value', ['off', 'none', '0', ''])
def test_sweep_interval_disabled(monkeypatch, value):
    monkeypatch.setenv('BLEWATCH_SWEEP_INTERVAL', value)

    assert WatchConfig.from_env().sweep_interval is None


def test_mqtt_settings_from_env(monkeypatch):
    monkeypatch.setenv('BLEWATCH_MQTT_ENABLED', 'true')
    monkeypatch.setenv('BLEWATCH_MQTT_HOST', 'broker.local')
    monkeypatch.setenv('BLEWATCH_MQTT_PORT', '8883')
    monkeypatch.setenv('BLEWATCH_MQTT_QOS', '0')
    monkeypatch.setenv('BLEWATCH_MQTT_USERNAME', 'user')
    monkeypatch.setenv('BLEWATCH_MQTT_USE_TLS', '1')

    mqtt = WatchConfig.from_env().mqtt

    assert mqtt.enabled is True
    assert mqtt.host == 'broker.local'
    assert mqtt.port == 8883
    assert mqtt.qos == 0
    assert mqtt.username == 'user'
    assert mqtt.use_tls is True


def test_overrides_win_over_env(monkeypatch):
    monkeypatch.setenv('BLEWATCH_HEARTBEAT_TIMEOUT', '12')
    monkeypatch.setenv('BLEWATCH_MQTT_HOST', 'broker.local')

    config = WatchConfig.from_env(heartbeat_timeout=3, mqtt={'host': 'other'})

    assert config.heartbeat_timeout == 3
    assert config.mqtt.host == 'other'


def test_mqtt_settings_override():
    settings = MqttSettings(enabled=True, port=1999)

    assert WatchConfig.from_env(mqtt=settings).mqtt == settings


@pytest.mark.parametrize('kwargs', [
    {'heartbeat_timeout': 0},
    {'heartbeat_timeout': -1},
    {'sweep_interval': 0},
])
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        WatchConfig(**kwargs)


def test_config_is_frozen():
    config = WatchConfig()
    with pytest.raises(AttributeError):
        config.heartbeat_timeout = 10
