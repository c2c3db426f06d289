import time
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.reading_store import build_default_store
from services.errors import StoreError
from settings import get_settings


@pytest.fixture
def api_client(isolated_env) -> Iterator[TestClient]:
    app = create_app()
    with TestClient(app) as client:
        yield client


def test_ingest_without_timestamp_returns_created(api_client: TestClient) -> None:
    before_ms = int(time.time() * 1000)
    response = api_client.post("/api/sensor/ingest", json={"device_id": "s1", "value": 23.5})
    after_ms = int(time.time() * 1000)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert set(data) == {"id", "device_id", "value", "timestamp", "created_at"}
    assert data["device_id"] == "s1"
    assert data["value"] == 23.5
    assert before_ms - 1000 <= data["timestamp"] <= after_ms + 1000


def test_ingest_keeps_client_timestamp(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/sensor/ingest",
        json={"device_id": "s1", "value": 20.0, "timestamp": 1700000000000},
    )

    assert response.status_code == 201
    assert response.json()["data"]["timestamp"] == 1700000000000


def test_ingest_missing_device_id_returns_bad_request(api_client: TestClient) -> None:
    response = api_client.post("/api/sensor/ingest", json={"value": 23.5})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "device_id is required"}


def test_ingest_non_numeric_value_returns_bad_request(api_client: TestClient) -> None:
    response = api_client.post("/api/sensor/ingest", json={"device_id": "s1", "value": "warm"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "value must be a finite number" in body["error"]

    missing = api_client.get("/api/sensor/s1/latest")
    assert missing.status_code == 404


@pytest.mark.parametrize("content", [b"", b"{broken", b"[1, 2]"])
def test_ingest_rejects_non_object_bodies(api_client: TestClient, content: bytes) -> None:
    response = api_client.post(
        "/api/sensor/ingest",
        content=content,
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_latest_for_unknown_device_returns_not_found(api_client: TestClient) -> None:
    response = api_client.get("/api/sensor/unknown/latest")

    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error": "No readings found for device 'unknown'",
    }


def test_latest_returns_reading_with_greatest_timestamp(api_client: TestClient) -> None:
    newer = api_client.post(
        "/api/sensor/ingest", json={"device_id": "s1", "value": 2.0, "timestamp": 2000}
    ).json()["data"]
    api_client.post("/api/sensor/ingest", json={"device_id": "s1", "value": 1.0, "timestamp": 1000})

    first = api_client.get("/api/sensor/s1/latest")
    second = api_client.get("/api/sensor/s1/latest")

    assert first.status_code == 200
    assert first.json() == {"success": True, "data": newer}
    assert second.json() == first.json()


def test_health_reports_ok(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert body["timestamp"]


def test_store_failure_returns_generic_server_error(api_client: TestClient, caplog) -> None:
    build_default_store().close()

    response = api_client.post("/api/sensor/ingest", json={"device_id": "s1", "value": 1.0})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}
    assert any(
        getattr(record, "path", None) == "/api/sensor/ingest" for record in caplog.records
    )


def test_readings_survive_restart(isolated_env) -> None:
    with TestClient(create_app()) as client:
        stored = client.post(
            "/api/sensor/ingest", json={"device_id": "s1", "value": 4.5, "timestamp": 10}
        ).json()["data"]

    with TestClient(create_app()) as client:
        response = client.get("/api/sensor/s1/latest")

    assert response.status_code == 200
    assert response.json()["data"] == stored


def test_startup_fails_without_live_store(tmp_path, monkeypatch, reset_factories) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    monkeypatch.setenv("READING_STORE_JOURNAL_PATH", str(blocker / "readings.jsonl"))
    reset_factories()
    try:
        with pytest.raises(StoreError):
            with TestClient(create_app()):
                pass
    finally:
        reset_factories()


def test_lifespan_runs_mqtt_intake_when_enabled(isolated_env, monkeypatch, mqtt_client_factory) -> None:
    monkeypatch.setenv("ENABLE_MQTT", "true")
    monkeypatch.setenv("MQTT_BROKER_HOST", "broker.test")
    get_settings.cache_clear()
    monkeypatch.setattr("app.main.default_client_factory", mqtt_client_factory)

    app = create_app()
    with TestClient(app) as client:
        intake = app.state.mqtt_intake
        assert intake is not None
        mqtt_client = mqtt_client_factory.last
        assert mqtt_client.connect_target == ("broker.test", 1883, 60)

        stored = intake.handle_message("iot/sensor/s2/value", b'{"value": 19.1}')
        assert stored is not None
        response = client.get("/api/sensor/s2/latest")
        assert response.json()["data"]["id"] == stored.id

    assert mqtt_client.loop_stopped is True
    assert mqtt_client.disconnected is True


def test_lifespan_keeps_serving_when_mqtt_cannot_start(
    isolated_env, monkeypatch, mqtt_client_factory
) -> None:
    monkeypatch.setenv("ENABLE_MQTT", "true")
    get_settings.cache_clear()

    def refuse(client) -> None:
        client.connect_error = OSError("unreachable")

    mqtt_client_factory.prepare = refuse
    monkeypatch.setattr("app.main.default_client_factory", mqtt_client_factory)

    app = create_app()
    with TestClient(app) as client:
        assert app.state.mqtt_intake is None
        assert client.get("/health").status_code == 200


def test_latest_lookup_ignores_surrounding_whitespace(api_client: TestClient) -> None:
    stored = api_client.post(
        "/api/sensor/ingest", json={"device_id": "  s1 ", "value": 4.0, "timestamp": 1000}
    ).json()["data"]

    response = api_client.get("/api/sensor/%20s1%20/latest")

    assert stored["device_id"] == "s1"
    assert response.status_code == 200
    assert response.json()["data"] == stored
