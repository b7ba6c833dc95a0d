"""Keep-alive engine state.

This module holds the value types shared by the cycle engine, the scheduler
and the status reporter. It is intentionally separated from the engine to
avoid circular imports with the status endpoints.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from sessionkeeper.client import SessionCredential


class NextAction(StrEnum):
    """What the next cycle will do."""

    LOGIN = "login"
    LOGOUT = "logout"

    def toggled(self) -> "NextAction":
        return NextAction.LOGOUT if self is NextAction.LOGIN else NextAction.LOGIN


class EngineState(StrEnum):
    """Status of the cycle engine.

    - IDLE: Waiting for the next tick
    - RUNNING_LOGIN / RUNNING_LOGOUT: A cycle is in progress
    - COOLDOWN: Waiting out the short delay after every login batch failed
    """

    IDLE = "idle"
    RUNNING_LOGIN = "running_login"
    RUNNING_LOGOUT = "running_logout"
    COOLDOWN = "cooldown"

    @property
    def running(self) -> bool:
        return self in (EngineState.RUNNING_LOGIN, EngineState.RUNNING_LOGOUT)


@dataclass
class SessionState:
    """The backend session currently held by the engine.

    ``authenticated`` is derived from ``credential`` so the two can never
    disagree.
    """

    credential: SessionCredential | None = None
    account: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.credential is not None

    def authenticate(self, credential: SessionCredential, account: str | None = None) -> None:
        self.credential = credential
        self.account = account

    def clear(self) -> None:
        self.credential = None
        self.account = None


@dataclass
class CycleStats:
    """Run counters and timestamps, written by the engine and read by observers.

    Counters only change through ``record_success``/``record_failure`` so
    ``total_runs == successful_runs + failed_runs`` always holds in a snapshot.
    """

    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    last_error: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def mark_started(self, when: datetime) -> None:
        with self._lock:
            self.last_run_at = when

    def record_success(self) -> None:
        with self._lock:
            self.total_runs += 1
            self.successful_runs += 1

    def record_failure(self, error: str | None = None) -> None:
        with self._lock:
            self.total_runs += 1
            self.failed_runs += 1
            if error is not None:
                self.last_error = error

    def set_last_error(self, error: str | None) -> None:
        with self._lock:
            self.last_error = error

    def schedule(self, when: datetime | None) -> None:
        with self._lock:
            self.next_run_at = when

    def to_dict(self) -> dict[str, Any]:
        """Consistent snapshot for JSON serialization."""
        with self._lock:
            return {
                "totalRuns": self.total_runs,
                "successfulRuns": self.successful_runs,
                "failedRuns": self.failed_runs,
                "lastRun": self.last_run_at.isoformat() if self.last_run_at else None,
                "nextRun": self.next_run_at.isoformat() if self.next_run_at else None,
                "lastError": self.last_error,
            }


@dataclass(frozen=True)
class CycleOutcome:
    """Result of one engine invocation.

    Attributes:
        action: The action the cycle performed (None when skipped).
        success: Whether the action succeeded.
        attempts: Total attempts made across all batches.
        error: Final error message on failure.
        skipped: True when another cycle was already running.
        alerted: True when an exhaustion alert was dispatched.
        duration: Wall time of the cycle in seconds.
    """

    action: NextAction | None
    success: bool
    attempts: int = 0
    error: str | None = None
    skipped: bool = False
    alerted: bool = False
    duration: float = 0.0

    @classmethod
    def skipped_cycle(cls) -> "CycleOutcome":
        return cls(action=None, success=False, skipped=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value if self.action else None,
            "success": self.success,
            "attempts": self.attempts,
            "error": self.error,
            "skipped": self.skipped,
            "alerted": self.alerted,
            "duration": round(self.duration, 3),
        }
