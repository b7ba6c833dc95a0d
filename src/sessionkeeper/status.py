"""Status endpoints for the keep-alive service.

Observers only read engine state here; the single mutating route is the
manual trigger, which goes through the engine's own re-entrancy guard.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Any

import psutil
from flask import Flask, jsonify, request
from werkzeug.serving import make_server

from sessionkeeper import __version__
from sessionkeeper.alerts import utc_now
from sessionkeeper.logging import SERVICE_NAME, get_logger

if TYPE_CHECKING:
    from sessionkeeper.keepalive.engine import CycleEngine

LOG = get_logger(__name__)

# Lets browser pages fire the manual trigger.
TRIGGER_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _megabytes(value: int) -> str:
    return f"{value / 1024 / 1024:.2f} MB"


def memory_usage() -> dict[str, str]:
    """Resident and virtual memory of this process."""
    info = psutil.Process().memory_info()
    return {"rss": _megabytes(info.rss), "vms": _megabytes(info.vms)}


def create_status_app(
    engine: CycleEngine,
    started_at: float | None = None,
    environment: str = "development",
) -> Flask:
    """Build the Flask app exposing health, metrics and a manual trigger.

    Args:
        engine: The running cycle engine.
        started_at: ``time.monotonic()`` at process start, for uptime.
        environment: Deployment label reported by ``/health``.
    """
    app = Flask(__name__)
    started = started_at if started_at is not None else time.monotonic()

    def uptime() -> float:
        return round(time.monotonic() - started, 3)

    @app.get("/")
    def index() -> Any:
        return jsonify(
            {
                "status": "ok",
                "service": SERVICE_NAME,
                "version": __version__,
                "timestamp": utc_now().isoformat(),
            }
        )

    @app.get("/health")
    def health() -> Any:
        stats = engine.stats.to_dict()
        return jsonify(
            {
                "status": "ok",
                "timestamp": utc_now().isoformat(),
                "uptime": uptime(),
                "memory": memory_usage(),
                "load": list(psutil.getloadavg()),
                "env": environment,
                "lastRun": stats["lastRun"],
                "nextRun": stats["nextRun"],
                "stats": {
                    "totalRuns": stats["totalRuns"],
                    "successfulRuns": stats["successfulRuns"],
                    "failedRuns": stats["failedRuns"],
                },
                "lastError": stats["lastError"],
                "isLoggedIn": engine.session.authenticated,
                "nextAction": engine.next_action.value,
                "state": engine.state.value,
                "alerts": engine.notifier.state.to_dict(),
            }
        )

    @app.get("/metrics")
    def metrics() -> Any:
        return jsonify(engine.stats.to_dict())

    @app.route("/trigger", methods=["POST", "OPTIONS"])
    def trigger() -> Any:
        if request.method == "OPTIONS":
            return "", 204, TRIGGER_CORS_HEADERS
        LOG.info("manual_trigger_received")
        outcome = engine.run_cycle()
        body = {
            **outcome.to_dict(),
            "timestamp": utc_now().isoformat(),
            "nextAction": engine.next_action.value,
            "nextRun": engine.stats.to_dict()["nextRun"],
        }
        if outcome.skipped:
            return jsonify(body), 409, TRIGGER_CORS_HEADERS
        return jsonify(body), 200 if outcome.success else 500, TRIGGER_CORS_HEADERS

    return app


class StatusServer:
    """Serves the status app on a background thread until ``shutdown``."""

    def __init__(self, app: Flask, host: str, port: int) -> None:
        self._server = make_server(host, port, app, threaded=True)
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="status-server",
            daemon=True,
        )

    @property
    def port(self) -> int:
        return self._server.server_port

    def start(self) -> None:
        self._thread.start()
        LOG.info("status_server_started", port=self.port)

    def shutdown(self) -> None:
        self._server.shutdown()
        self._thread.join(5)
        LOG.info("status_server_stopped")
