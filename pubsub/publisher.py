"""One-shot MQTT publisher used by the CLI to feed readings onto the bus."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Union

import paho.mqtt.client as mqtt

from pubsub.intake import ClientFactory, default_client_factory
from pubsub.topics import topic_for_device
from services.errors import TransportError

logger = logging.getLogger(__name__)


def publish_reading(
    device_id: str,
    value: float,
    timestamp: Optional[Union[int, float, str]] = None,
    host: str = "localhost",
    port: int = 1883,
    topic_pattern: str = "iot/sensor/+/value",
    qos: int = 1,
    username: Optional[str] = None,
    password: Optional[str] = None,
    timeout: float = 5.0,
    client_factory: ClientFactory = default_client_factory,
) -> str:
    """Publish a single reading and wait for the broker to accept it.

    Returns the concrete topic the message was sent to.
    """
    topic = topic_for_device(topic_pattern, device_id)
    body: Dict[str, Any] = {"value": value}
    if timestamp is not None:
        body["timestamp"] = timestamp

    client = client_factory(f"sensor-telemetry-publisher-{device_id}")
    if username:
        client.username_pw_set(username, password)
    try:
        client.connect(host, port, keepalive=30)
    except OSError as exc:
        raise TransportError(f"Unable to connect to MQTT broker {host}:{port}: {exc}") from exc

    client.loop_start()
    try:
        info = client.publish(topic, json.dumps(body), qos=qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"Publish to {topic!r} failed: {mqtt.error_string(info.rc)}")
        try:
            info.wait_for_publish(timeout=timeout)
        except (RuntimeError, ValueError) as exc:
            raise TransportError(f"Publish to {topic!r} failed: {exc}") from exc
        if not info.is_published():
            raise TransportError(f"Publish to {topic!r} was not acknowledged within {timeout}s")
    finally:
        client.disconnect()
        client.loop_stop()

    logger.info("Published reading", extra={"topic": topic, "device_id": device_id})
    return topic
