"""sessionkeeper - keep a backend session alive.

Periodically performs authenticated login/logout cycles against a
cookie-based HTTP API so the account's session never goes stale.

This package provides:
- SessionClient for the backend's login, verify and logout endpoints
- retry() with capped exponential backoff
- AlertNotifier for rate-limited exhaustion alerts
- CycleEngine and Scheduler driving the keep-alive cycles
- A Flask status server and a typer CLI (``sessionkeeper run``)

Example:
    >>> from sessionkeeper import get_settings
    >>> from sessionkeeper.service import KeepAliveService
    >>> KeepAliveService(get_settings()).run()
"""

__version__ = "1.0.0"

from sessionkeeper.alerts import AlertNotifier, AlertState  # noqa: E402
from sessionkeeper.client import LoginCredentials, SessionClient, SessionCredential  # noqa: E402
from sessionkeeper.config import KeepAliveSettings, get_settings  # noqa: E402
from sessionkeeper.exceptions import (  # noqa: E402
    AuthError,
    ConfigurationError,
    RejectedError,
    SessionKeeperError,
    TransportError,
)
from sessionkeeper.keepalive import CycleEngine, CycleStats, NextAction, Scheduler  # noqa: E402
from sessionkeeper.retry import RetryPolicy, retry  # noqa: E402

__all__ = [
    # Version
    "__version__",
    # Session client
    "LoginCredentials",
    "SessionClient",
    "SessionCredential",
    # Retry
    "RetryPolicy",
    "retry",
    # Alerts
    "AlertNotifier",
    "AlertState",
    # Engine
    "CycleEngine",
    "CycleStats",
    "NextAction",
    "Scheduler",
    # Configuration
    "KeepAliveSettings",
    "get_settings",
    # Exceptions
    "SessionKeeperError",
    "ConfigurationError",
    "AuthError",
    "TransportError",
    "RejectedError",
]
