from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator, List, Optional, Tuple

import paho.mqtt.client as mqtt
import pytest

from datastore.reading_store import build_default_store
from services.ingestion import build_default_ingestion_service
from services.retrieval import build_default_retrieval_service
from services.validator import build_default_validator
from settings import get_settings


class SteppingClock:
    """Deterministic clock that advances by ``step`` on every call."""

    def __init__(
        self,
        start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc),
        step: timedelta = timedelta(milliseconds=1),
    ) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        moment = self.current
        self.current = self.current + self.step
        return moment


class FakePublishInfo:
    def __init__(self, rc: int = mqtt.MQTT_ERR_SUCCESS, published: bool = True) -> None:
        self.rc = rc
        self._published = published
        self.wait_timeout: Optional[float] = None

    def wait_for_publish(self, timeout: Optional[float] = None) -> None:
        self.wait_timeout = timeout

    def is_published(self) -> bool:
        return self._published


class FakeMqttClient:
    """Records the calls the adapters make on a paho client."""

    def __init__(self, client_id: str) -> None:
        self.client_id = client_id
        self.on_connect: Optional[Callable[..., None]] = None
        self.on_disconnect: Optional[Callable[..., None]] = None
        self.on_message: Optional[Callable[..., None]] = None
        self.credentials: Optional[Tuple[str, Optional[str]]] = None
        self.reconnect_delay: Optional[Tuple[int, int]] = None
        self.connect_target: Optional[Tuple[str, int, int]] = None
        self.subscriptions: List[Tuple[str, int]] = []
        self.published: List[Tuple[str, str, int]] = []
        self.loop_running = False
        self.loop_stopped = False
        self.disconnected = False
        self.disconnected_while_looping = False
        self.subscribe_result = mqtt.MQTT_ERR_SUCCESS
        self.connect_error: Optional[Exception] = None
        self.publish_info = FakePublishInfo()

    def username_pw_set(self, username: str, password: Optional[str] = None) -> None:
        self.credentials = (username, password)

    def reconnect_delay_set(self, min_delay: int = 1, max_delay: int = 120) -> None:
        self.reconnect_delay = (min_delay, max_delay)

    def connect_async(self, host: str, port: int = 1883, keepalive: int = 60) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connect_target = (host, port, keepalive)

    def connect(self, host: str, port: int = 1883, keepalive: int = 60) -> int:
        self.connect_async(host, port, keepalive)
        return mqtt.MQTT_ERR_SUCCESS

    def loop_start(self) -> None:
        self.loop_running = True

    def loop_stop(self) -> None:
        self.loop_running = False
        self.loop_stopped = True

    def disconnect(self) -> None:
        self.disconnected = True
        self.disconnected_while_looping = self.loop_running

    def subscribe(self, topic: str, qos: int = 0) -> Tuple[int, int]:
        self.subscriptions.append((topic, qos))
        return self.subscribe_result, len(self.subscriptions)

    def publish(self, topic: str, payload: Any = None, qos: int = 0) -> FakePublishInfo:
        self.published.append((topic, payload, qos))
        return self.publish_info


class FakeClientFactory:
    def __init__(self) -> None:
        self.clients: List[FakeMqttClient] = []
        self.prepare: Optional[Callable[[FakeMqttClient], None]] = None

    def __call__(self, client_id: str) -> FakeMqttClient:
        client = FakeMqttClient(client_id)
        if self.prepare is not None:
            self.prepare(client)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeMqttClient:
        return self.clients[-1]


@pytest.fixture()
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture()
def mqtt_client_factory() -> FakeClientFactory:
    return FakeClientFactory()


def _clear_factory_caches() -> None:
    for factory in (
        get_settings,
        build_default_store,
        build_default_validator,
        build_default_ingestion_service,
        build_default_retrieval_service,
    ):
        factory.cache_clear()


@pytest.fixture()
def reset_factories() -> Callable[[], None]:
    return _clear_factory_caches


@pytest.fixture()
def isolated_env(tmp_path, monkeypatch) -> Iterator[None]:
    """Point the default factories at a per-test journal with MQTT disabled."""
    monkeypatch.setenv("READING_STORE_JOURNAL_PATH", str(tmp_path / "readings.jsonl"))
    monkeypatch.setenv("ENABLE_MQTT", "false")
    _clear_factory_caches()
    yield
    _clear_factory_caches()
