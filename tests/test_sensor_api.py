"""Tests for the /api/sensor endpoints."""
import pytest
from fastapi.testclient import TestClient

from src.main import app
from routers.sensor import get_engine


@pytest.fixture
def client(engine):
    """Test client bound to a manual-clock engine."""
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def connect(client, engine):
    assert client.put("/api/sensor/connect").status_code == 204
    engine.scheduler.advance(engine.config.connect_delay)


class TestStateEndpoint:
    """Test GET /api/sensor/state."""

    def test_initial_state(self, client):
        response = client.get("/api/sensor/state")
        assert response.status_code == 200

        data = response.json()
        assert data["connection_status"] == "disconnected"
        assert data["current_device"] is None
        assert data["last_reading"] is None
        assert data["history_size"] == 0
        assert data["prediction_curve"] == []

    def test_state_after_connect(self, client, engine):
        connect(client, engine)
        data = client.get("/api/sensor/state").json()

        assert data["connection_status"] == "connected"
        assert data["current_device"]["status"] == "active"
        assert data["last_reading"]["quality"] == "good"
        assert data["last_reading"]["value_mmol"] == pytest.approx(data["last_reading"]["value_mgdl"] / 18)
        assert data["generating"] is True

    def test_engine_not_running(self):
        app.dependency_overrides.clear()
        response = TestClient(app).get("/api/sensor/state")
        assert response.status_code == 503


class TestReadingEndpoints:
    """Test readings, prediction and forecast."""

    def test_readings(self, client, engine):
        connect(client, engine)
        engine.scheduler.advance(engine.config.tick_interval * 4)

        readings = client.get("/api/sensor/readings").json()["list"]
        assert len(readings) == 5
        assert readings == sorted(readings, key=lambda r: r["timestamp"])

        limited = client.get("/api/sensor/readings", params={"limit": 2}).json()["list"]
        assert [r["id"] for r in limited] == [r["id"] for r in readings[-2:]]

    def test_invalid_limit(self, client):
        assert client.get("/api/sensor/readings", params={"limit": 0}).status_code == 422

    def test_prediction(self, client, engine):
        connect(client, engine)
        assert client.get("/api/sensor/prediction").json()["list"] == []

        engine.scheduler.advance(engine.config.tick_interval * 2)
        assert len(client.get("/api/sensor/prediction").json()["list"]) == 30

    def test_forecast(self, client, engine):
        connect(client, engine)
        points = client.get("/api/sensor/forecast", params={"minutes_ahead": 15}).json()["list"]
        assert len(points) == 3

    def test_manual_reading_requires_connection(self, client, engine):
        response = client.put("/api/sensor/reading")
        assert response.status_code == 409

        connect(client, engine)
        assert client.put("/api/sensor/reading").status_code == 204
        assert len(engine.reading_history) == 2


class TestCommandEndpoints:
    """Test pairing, faults and settings."""

    def test_pair(self, client, engine):
        assert client.put("/api/sensor/pair").status_code == 204
        assert client.get("/api/sensor/state").json()["connection_status"] == "pairing"

        engine.scheduler.advance(engine.config.pairing_delay)
        assert client.get("/api/sensor/state").json()["current_device"]["is_current"] is True

    def test_fault_with_kind(self, client, engine):
        connect(client, engine)
        response = client.put("/api/sensor/fault", json={"kind": "signalLoss"})
        assert response.status_code == 204

        data = client.get("/api/sensor/state").json()
        assert data["connection_status"] == "intermittent"
        assert data["active_fault"]["kind"] == "signalLoss"
        assert data["active_fault"]["clears_at"] is not None

    def test_fault_without_body(self, client):
        assert client.put("/api/sensor/fault").status_code == 204

    def test_unknown_fault_kind(self, client):
        assert client.put("/api/sensor/fault", json={"kind": "meltdown"}).status_code == 422

    def test_expire(self, client, engine):
        connect(client, engine)
        client.put("/api/sensor/expire")
        data = client.get("/api/sensor/state").json()

        assert data["connection_status"] == "error"
        assert data["active_fault"]["kind"] == "sensorExpired"
        assert data["current_device"]["status"] == "expired"

    def test_disconnect(self, client, engine):
        connect(client, engine)
        assert client.put("/api/sensor/disconnect").status_code == 204
        assert client.get("/api/sensor/state").json()["generating"] is False

    def test_settings(self, client, engine):
        response = client.put("/api/sensor/settings", json={"error_probability": 0.3, "simulation_enabled": False})
        assert response.status_code == 204
        assert engine.error_probability == pytest.approx(0.3)
        assert engine.simulation_enabled is False

    def test_settings_out_of_ui_range(self, client, engine):
        response = client.put("/api/sensor/settings", json={"error_probability": 0.8})
        assert response.status_code == 422
        assert engine.error_probability == 0.0


class TestApplication:
    """Test the application lifespan."""

    def test_health(self):
        with TestClient(app) as client:
            assert client.get("/health").json()["status"] == "ok"
            state = client.get("/api/sensor/state")
            assert state.status_code == 200
            assert state.json()["connection_status"] == "disconnected"
