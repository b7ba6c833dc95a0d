"""Pytest configuration for sessionkeeper tests."""

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog
from structlog._config import BoundLoggerLazyProxy

# Add src directory to sys.path for test imports
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

REQUIRED_ENV = {
    "API_BASE_URL": "https://api.example.com/",
    "KEEP_ALIVE_EMAIL": "ops@example.com",
    "KEEP_ALIVE_PASSWORD": "hunter2",
}

OPTIONAL_ENV = [
    "API_USERNAME",
    "API_PASSWORD",
    "KEEP_ALIVE_INTERVAL",
    "LOGIN_IDENTITY_FIELD",
    "ALERT_EMAIL",
    "SMTP_HOST",
    "SMTP_PASSWORD",
    "ALERT_COOLDOWN_MS",
    "LOGIN_FOLLOWUP_BATCHES",
    "PORT",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_DIR",
    "LOG_RETENTION_DAYS",
    "LOG_ERROR_RETENTION_DAYS",
    "APP_ENV",
    "IDENTITY",
    "PASSWORD",
]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[dict[str, str]]:
    """Isolate each test with a known environment.

    This fixture:
    - Runs each test from an empty directory so no stray .env is read
    - Sets the required variables and clears optional ones
    - Resets the global settings instance before each test
    """
    monkeypatch.chdir(tmp_path)
    for name in OPTIONAL_ENV:
        monkeypatch.delenv(name, raising=False)
    for name, value in REQUIRED_ENV.items():
        monkeypatch.setenv(name, value)

    from sessionkeeper.config import reset_settings

    reset_settings()
    yield REQUIRED_ENV
    reset_settings()


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Reset structlog after each test to prevent closed file handle errors.

    CliRunner captures stderr with a temporary file. When configure_logging()
    runs inside CliRunner, structlog binds loggers to that temp file. After
    the test, CliRunner closes the file, so stale references are dropped here.
    """
    yield
    from sessionkeeper.logging import remove_log_handlers

    remove_log_handlers()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    for module in list(sys.modules.values()):
        for attr in getattr(module, "__dict__", {}).values():
            if isinstance(attr, BoundLoggerLazyProxy):
                attr.__dict__.pop("bind", None)
