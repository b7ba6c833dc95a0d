"""Process bootstrap: wires settings, engine, scheduler and status server."""

from __future__ import annotations

import signal
import threading
import time
from types import FrameType

from sessionkeeper.alerts import AlertNotifier, build_transport
from sessionkeeper.client import LoginCredentials, SessionClient
from sessionkeeper.config import KeepAliveSettings
from sessionkeeper.keepalive.engine import CycleEngine
from sessionkeeper.keepalive.scheduler import Scheduler
from sessionkeeper.logging import get_logger
from sessionkeeper.retry import RetryPolicy
from sessionkeeper.status import StatusServer, create_status_app

LOG = get_logger(__name__)

SCHEDULER_STOP_TIMEOUT = 10.0


def build_engine(
    settings: KeepAliveSettings,
    *,
    stop_event: threading.Event | None = None,
    client: SessionClient | None = None,
) -> CycleEngine:
    """Create a cycle engine configured from ``settings``."""
    credentials = LoginCredentials(
        identity=settings.identity,
        password=settings.password.get_secret_value(),
        identity_field=settings.identity_field,
        remember_me=settings.login_remember_me,
    )
    notifier = AlertNotifier(
        build_transport(settings),
        cooldown=settings.alert_cooldown_seconds,
    )
    return CycleEngine(
        client or SessionClient.from_settings(settings),
        credentials,
        notifier,
        login_policy=RetryPolicy(
            max_attempts=settings.login_max_attempts,
            base_delay=settings.login_retry_base_delay_ms / 1000,
            max_delay=settings.login_retry_max_delay_ms / 1000,
        ),
        logout_policy=RetryPolicy(
            max_attempts=settings.logout_max_attempts,
            base_delay=settings.logout_retry_base_delay_ms / 1000,
            max_delay=settings.logout_retry_max_delay_ms / 1000,
        ),
        verify_session=settings.verify_session,
        followup_batches=settings.login_followup_batches,
        failure_retry_delay=settings.failure_retry_delay_seconds,
        stop_event=stop_event,
    )


class KeepAliveService:
    """The long-running keep-alive process.

    ``run`` blocks until SIGINT/SIGTERM, then stops the scheduler, performs one
    best-effort logout and stops the status server.
    """

    def __init__(self, settings: KeepAliveSettings, *, client: SessionClient | None = None) -> None:
        self.settings = settings
        self.started_at = time.monotonic()
        self.stop_event = threading.Event()
        self.engine = build_engine(settings, stop_event=self.stop_event, client=client)
        self.scheduler = Scheduler(
            self.engine.run_cycle,
            settings.interval_seconds,
            next_delay=self.engine.consume_next_delay,
            on_schedule=self.engine.stats.schedule,
            stop_event=self.stop_event,
        )
        self.app = create_status_app(
            self.engine, started_at=self.started_at, environment=settings.app_env
        )
        self.server: StatusServer | None = None
        self._shutdown_requested = threading.Event()

    def start(self, serve: bool = True) -> None:
        LOG.info(
            "service_starting",
            backend=self.settings.api_base_url,
            interval_minutes=round(self.settings.interval_seconds / 60, 1),
            port=self.settings.port,
        )
        if serve:
            self.server = StatusServer(self.app, self.settings.status_host, self.settings.port)
            self.server.start()
        self.scheduler.start()

    def request_shutdown(self, signum: int | None = None, frame: FrameType | None = None) -> None:
        name = signal.Signals(signum).name if signum is not None else "request"
        LOG.info("shutdown_requested", signal=name)
        self.stop_event.set()
        self._shutdown_requested.set()

    def wait(self) -> None:
        while not self._shutdown_requested.wait(1.0):
            pass

    def shutdown(self) -> None:
        self.stop_event.set()
        self.scheduler.stop(SCHEDULER_STOP_TIMEOUT)
        self.engine.shutdown_logout(self.settings.shutdown_logout_timeout_ms / 1000)
        if self.server is not None:
            self.server.shutdown()
        self.engine.client.close()
        LOG.info("service_stopped")

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self.request_shutdown)
        signal.signal(signal.SIGINT, self.request_shutdown)

    def run(self) -> int:
        """Run until a termination signal arrives. Returns the exit status."""
        self.install_signal_handlers()
        self.start()
        try:
            self.wait()
        finally:
            self.shutdown()
        return 0
