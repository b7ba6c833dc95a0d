"""Tests for the status endpoints."""

import threading

import pytest
import requests

from sessionkeeper.exceptions import TransportError
from sessionkeeper.status import StatusServer, create_status_app, memory_usage


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def http(engine):
    app = create_status_app(engine)
    app.testing = True
    return app.test_client()


class TestIndex:
    """Tests for GET /."""

    def test_liveness(self, http):
        response = http.get("/")

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "ok"
        assert data["service"] == "keep-alive-service"


class TestHealth:
    """Tests for GET /health."""

    def test_initial_health(self, http):
        response = http.get("/health")

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "ok"
        assert data["uptime"] >= 0
        assert set(data["memory"]) == {"rss", "vms"}
        assert data["lastRun"] is None
        assert data["nextRun"] is None
        assert data["stats"] == {"totalRuns": 0, "successfulRuns": 0, "failedRuns": 0}
        assert data["lastError"] is None
        assert data["isLoggedIn"] is False
        assert data["nextAction"] == "login"
        assert data["state"] == "idle"
        assert len(data["load"]) == 3
        assert data["env"] == "development"

    def test_environment_label(self, engine):
        app = create_status_app(engine, environment="production")

        data = app.test_client().get("/health").get_json()

        assert data["env"] == "production"

    def test_health_after_failed_login(self, http, engine, client):
        client.login.side_effect = TransportError("backend down")
        engine.run_cycle()

        data = http.get("/health").get_json()

        assert data["stats"] == {"totalRuns": 1, "successfulRuns": 0, "failedRuns": 1}
        assert data["lastError"] == "backend down"
        assert data["state"] == "cooldown"
        assert data["alerts"]["suppressed"] is True
        assert data["lastRun"] is not None


class TestMetrics:
    """Tests for GET /metrics."""

    def test_metrics_after_login(self, http, engine):
        engine.run_cycle()

        data = http.get("/metrics").get_json()

        assert data["totalRuns"] == 1
        assert data["successfulRuns"] == 1
        assert data["failedRuns"] == 0
        assert set(data) == {
            "totalRuns",
            "successfulRuns",
            "failedRuns",
            "lastRun",
            "nextRun",
            "lastError",
        }


class TestTrigger:
    """Tests for POST /trigger."""

    def test_successful_trigger(self, http, engine):
        response = http.post("/trigger")

        assert response.status_code == 200
        data = response.get_json()
        assert data["action"] == "login"
        assert data["success"] is True
        assert data["nextAction"] == "logout"
        assert engine.session.authenticated is True

    def test_failed_trigger(self, http, client):
        client.login.side_effect = TransportError("down")

        response = http.post("/trigger")

        assert response.status_code == 500
        assert response.get_json()["error"] == "down"

    def test_trigger_while_running_conflicts(self, http, engine, client, credential):
        entered = threading.Event()
        release = threading.Event()

        def login(_credentials):
            entered.set()
            release.wait(5)
            return credential

        client.login.side_effect = login
        worker = threading.Thread(target=engine.run_cycle)
        worker.start()
        assert entered.wait(5)

        response = http.post("/trigger")
        release.set()
        worker.join(5)

        assert response.status_code == 409
        assert response.get_json()["skipped"] is True

    def test_get_not_allowed(self, http):
        assert http.get("/trigger").status_code == 405

    def test_preflight_answers_204_without_running_a_cycle(self, http, engine, client):
        response = http.options("/trigger")

        assert response.status_code == 204
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert "POST" in response.headers["Access-Control-Allow-Methods"]
        assert response.headers["Access-Control-Allow-Headers"] == "Content-Type"
        client.login.assert_not_called()
        assert engine.stats.total_runs == 0

    def test_trigger_response_carries_cors_headers(self, http, client):
        client.login.side_effect = TransportError("down")

        response = http.post("/trigger")

        assert response.status_code == 500
        assert response.headers["Access-Control-Allow-Origin"] == "*"


class TestStatusServer:
    """Tests for the background status server."""

    def test_serves_app_until_shutdown(self, engine):
        server = StatusServer(create_status_app(engine), "127.0.0.1", 0)
        server.start()
        try:
            response = requests.get(f"http://127.0.0.1:{server.port}/", timeout=5)
        finally:
            server.shutdown()

        assert response.status_code == 200
        assert response.json()["service"] == "keep-alive-service"


def test_memory_usage_format():
    usage = memory_usage()
    assert usage["rss"].endswith(" MB")
