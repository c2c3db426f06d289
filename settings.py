from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_NAME_ENV = "READING_STORE_NAME"
_STORE_JOURNAL_ENV = "READING_STORE_JOURNAL_PATH"
_VALUE_MIN_ENV = "READING_VALUE_MIN"
_VALUE_MAX_ENV = "READING_VALUE_MAX"
_MQTT_ENABLED_ENV = "ENABLE_MQTT"
_MQTT_HOST_ENV = "MQTT_BROKER_HOST"
_MQTT_PORT_ENV = "MQTT_BROKER_PORT"
_MQTT_USERNAME_ENV = "MQTT_USERNAME"
_MQTT_PASSWORD_ENV = "MQTT_PASSWORD"
_MQTT_TOPIC_ENV = "MQTT_TOPIC_PATTERN"
_MQTT_CLIENT_ID_ENV = "MQTT_CLIENT_ID"
_MQTT_QOS_ENV = "MQTT_QOS"
_HTTP_HOST_ENV = "HOST"
_HTTP_PORT_ENV = "PORT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    store_name: str
    store_journal_path: Optional[str]
    value_min: Optional[float]
    value_max: Optional[float]
    mqtt_enabled: bool
    mqtt_host: str
    mqtt_port: int
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_topic_pattern: str
    mqtt_client_id: str
    mqtt_qos: int
    http_host: str
    http_port: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_int_env(name: str, default: int, minimum: int = 1, maximum: Optional[int] = None) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    if parsed < minimum:
        return default
    if maximum is not None and parsed > maximum:
        return default
    return parsed


def _read_bound_env(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return None
    try:
        return float(candidate)
    except ValueError:
        return default


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if not candidate:
        return default
    return candidate in _TRUTHY


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_name=_read_str_env(_STORE_NAME_ENV, "readings"),
        store_journal_path=_read_optional_env(_STORE_JOURNAL_ENV, "./tmp/readings.jsonl"),
        value_min=_read_bound_env(_VALUE_MIN_ENV, -273.15),
        value_max=_read_bound_env(_VALUE_MAX_ENV, 1000.0),
        mqtt_enabled=_read_bool_env(_MQTT_ENABLED_ENV, False),
        mqtt_host=_read_str_env(_MQTT_HOST_ENV, "localhost"),
        mqtt_port=_read_int_env(_MQTT_PORT_ENV, 1883, maximum=65535),
        mqtt_username=_read_optional_env(_MQTT_USERNAME_ENV, None),
        mqtt_password=_read_optional_env(_MQTT_PASSWORD_ENV, None),
        mqtt_topic_pattern=_read_str_env(_MQTT_TOPIC_ENV, "iot/sensor/+/value"),
        mqtt_client_id=_read_str_env(_MQTT_CLIENT_ID_ENV, "sensor-telemetry-ingest"),
        mqtt_qos=_read_int_env(_MQTT_QOS_ENV, 1, minimum=0, maximum=2),
        http_host=_read_str_env(_HTTP_HOST_ENV, "0.0.0.0"),
        http_port=_read_int_env(_HTTP_PORT_ENV, 3000, maximum=65535),
        log_level=_read_log_level("INFO"),
    )
