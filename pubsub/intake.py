"""MQTT subscriber that feeds bus messages into the ingestion service."""

from __future__ import annotations

import json
import logging
import time
from threading import Lock
from typing import Any, Callable, Dict, Optional

import paho.mqtt.client as mqtt

from models.records import StoredReading
from pubsub.topics import device_id_from_topic, device_segment_index
from services.errors import ReadingValidationError, StoreError, TransportError
from services.ingestion import IngestionService
from settings import Settings

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], Any]


def default_client_factory(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=mqtt.MQTTv311,
    )


class MqttIntake:
    """Subscribes to a wildcard topic and ingests one reading per message.

    Messages are handled one at a time on paho's network thread. Anything
    that cannot be ingested is logged and dropped so later messages keep
    flowing. The subscription is re-issued on every (re)connect because the
    broker does not keep it for a clean session.
    """

    def __init__(
        self,
        ingestion: IngestionService,
        topic_pattern: str = "iot/sensor/+/value",
        host: str = "localhost",
        port: int = 1883,
        client_id: str = "sensor-telemetry-ingest",
        username: Optional[str] = None,
        password: Optional[str] = None,
        keepalive: int = 60,
        qos: int = 1,
        client_factory: ClientFactory = default_client_factory,
    ) -> None:
        device_segment_index(topic_pattern)
        self.ingestion = ingestion
        self.topic_pattern = topic_pattern
        self.host = host
        self.port = port
        self.client_id = f"{client_id}-{int(time.time())}"
        self.username = username
        self.password = password
        self.keepalive = keepalive
        self.qos = qos
        self._client_factory = client_factory
        self._client: Optional[Any] = None
        self._connected = False
        self._stats = {"received": 0, "ingested": 0, "dropped": 0}
        self._stats_lock = Lock()

    @classmethod
    def from_settings(
        cls,
        ingestion: IngestionService,
        settings: Settings,
        client_factory: ClientFactory = default_client_factory,
    ) -> "MqttIntake":
        return cls(
            ingestion=ingestion,
            topic_pattern=settings.mqtt_topic_pattern,
            host=settings.mqtt_host,
            port=settings.mqtt_port,
            client_id=settings.mqtt_client_id,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            qos=settings.mqtt_qos,
            client_factory=client_factory,
        )

    @property
    def is_connected(self) -> bool:
        return self._connected

    def start(self) -> None:
        """Begin connecting in the background; paho retries until the broker is up."""
        client = self._client_factory(self.client_id)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        if self.username:
            client.username_pw_set(self.username, self.password)
        client.reconnect_delay_set(min_delay=1, max_delay=60)

        logger.info("Connecting to MQTT broker %s:%d", self.host, self.port)
        try:
            client.connect_async(self.host, self.port, keepalive=self.keepalive)
            client.loop_start()
        except (OSError, ValueError) as exc:
            raise TransportError(
                f"Unable to start MQTT client for {self.host}:{self.port}: {exc}"
            ) from exc
        self._client = client

    def stop(self) -> None:
        client, self._client = self._client, None
        self._connected = False
        if client is None:
            return
        client.disconnect()
        client.loop_stop()
        stats = self.stats()
        logger.info(
            "MQTT intake stopped (received=%d ingested=%d dropped=%d)",
            stats["received"],
            stats["ingested"],
            stats["dropped"],
        )

    def stats(self) -> Dict[str, int]:
        with self._stats_lock:
            return dict(self._stats)

    def handle_message(self, topic: str, payload: bytes) -> Optional[StoredReading]:
        """Ingest a single bus message, returning ``None`` when it is dropped."""
        self._count("received")
        try:
            device_id = device_id_from_topic(self.topic_pattern, topic)
        except ValueError as exc:
            return self._drop(topic, "bad_topic", str(exc))

        try:
            body = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            return self._drop(topic, "bad_payload", f"invalid JSON: {exc}", device_id)
        if not isinstance(body, dict):
            return self._drop(topic, "bad_payload", "payload must be a JSON object", device_id)

        raw = {**body, "device_id": device_id}
        try:
            stored = self.ingestion.ingest(raw, source="mqtt")
        except ReadingValidationError as exc:
            return self._drop(topic, "validation", str(exc), device_id)
        except StoreError as exc:
            logger.error(
                "Failed to store MQTT reading: %s",
                exc,
                extra={"topic": topic, "device_id": device_id, "reason": "store"},
            )
            self._count("dropped")
            return None

        self._count("ingested")
        return stored

    def _drop(
        self,
        topic: str,
        reason: str,
        detail: str,
        device_id: Optional[str] = None,
    ) -> None:
        logger.warning(
            "Dropping MQTT message: %s",
            detail,
            extra={"topic": topic, "device_id": device_id, "reason": reason},
        )
        self._count("dropped")
        return None

    def _count(self, key: str) -> None:
        with self._stats_lock:
            self._stats[key] += 1

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code.is_failure:
            self._connected = False
            logger.error("MQTT connection refused: %s", reason_code)
            return

        self._connected = True
        result, _mid = client.subscribe(self.topic_pattern, qos=self.qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error(
                "MQTT subscription failed: %s",
                mqtt.error_string(result),
                extra={"topic": self.topic_pattern},
            )
            return
        logger.info("Subscribed to MQTT topic", extra={"topic": self.topic_pattern})

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None) -> None:
        self._connected = False
        logger.warning("MQTT disconnected (%s); waiting for reconnect", reason_code)

    def _on_message(self, client, userdata, message) -> None:
        self.handle_message(message.topic, message.payload)
