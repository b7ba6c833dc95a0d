"""Shared fixtures for unit tests."""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from sessionkeeper.alerts import Alert, AlertNotifier
from sessionkeeper.client import LoginCredentials, SessionClient, SessionCredential
from sessionkeeper.keepalive.engine import CycleEngine
from sessionkeeper.retry import RetryPolicy


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingTransport:
    """Alert transport that remembers what it sent."""

    def __init__(self) -> None:
        self.sent: list[Alert] = []

    def send(self, alert: Alert) -> None:
        self.sent.append(alert)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def notifier(transport: RecordingTransport, clock: FakeClock) -> AlertNotifier:
    return AlertNotifier(transport, cooldown=60.0, clock=clock)


@pytest.fixture
def credential() -> SessionCredential:
    return SessionCredential("sid=abc123")


@pytest.fixture
def client(credential: SessionCredential) -> MagicMock:
    """Session client mock whose calls succeed by default."""
    mock = MagicMock(spec=SessionClient)
    mock.login.return_value = credential
    mock.verify.return_value = "ops@example.com"
    mock.logout.return_value = None
    return mock


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_engine(client, notifier, clock, sleeps):
    """Factory for engines with instant backoff that records requested delays."""

    def _make(**kwargs) -> CycleEngine:
        kwargs.setdefault("login_policy", RetryPolicy(max_attempts=10, base_delay=1.0, max_delay=30.0))
        kwargs.setdefault("logout_policy", RetryPolicy(max_attempts=2, base_delay=1.0, max_delay=5.0))
        kwargs.setdefault("failure_retry_delay", 60.0)
        return CycleEngine(
            kwargs.pop("client", client),
            LoginCredentials("ops@example.com", "hunter2"),
            kwargs.pop("notifier", notifier),
            clock=clock,
            sleep=sleeps.append,
            **kwargs,
        )

    return _make
