"""Keep-alive cycle engine.

Each invocation of ``CycleEngine.run_cycle`` performs one cycle: a logout
when a session is held, a login otherwise. The action alternates after every
completed cycle, whatever its result, except that a login tick which fails
every batch stays on LOGIN and asks the scheduler for a short retry delay.

Only one cycle runs at a time. A non-blocking lock acts as the re-entrancy
flag: a tick that arrives while a cycle is running is a no-op.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import Any

from sessionkeeper.alerts import AlertNotifier, utc_now
from sessionkeeper.client import LoginCredentials, SessionClient, SessionCredential
from sessionkeeper.exceptions import (
    AuthError,
    CycleError,
    RetryExhaustedError,
    RetryInterruptedError,
)
from sessionkeeper.keepalive.state import (
    CycleOutcome,
    CycleStats,
    EngineState,
    NextAction,
    SessionState,
)
from sessionkeeper.logging import get_logger
from sessionkeeper.retry import RetryPolicy, retry

LOG = get_logger(__name__)

DEFAULT_LOGIN_POLICY = RetryPolicy(max_attempts=10, base_delay=5.0, max_delay=30.0)
DEFAULT_LOGOUT_POLICY = RetryPolicy(max_attempts=2, base_delay=1.0, max_delay=5.0)


class CycleEngine:
    """State machine alternating login and logout cycles.

    Args:
        client: Session client used for backend calls.
        credentials: Identity and secret for login.
        notifier: Alert notifier invoked when a login batch is exhausted.
        login_policy: Retry budget for one login batch.
        logout_policy: Retry budget for a logout.
        verify_session: Verify a fresh credential before accepting it.
        followup_batches: Extra login batches run after the first is exhausted.
        failure_retry_delay: Seconds until the next tick when every login batch failed.
        stats: Shared statistics; a fresh instance is created when omitted.
        clock: Returns the current UTC time.
        stop_event: Set on shutdown; interrupts backoff waits.
        sleep: Sleep used for backoff when no stop event is given.
    """

    def __init__(
        self,
        client: SessionClient,
        credentials: LoginCredentials,
        notifier: AlertNotifier,
        *,
        login_policy: RetryPolicy = DEFAULT_LOGIN_POLICY,
        logout_policy: RetryPolicy = DEFAULT_LOGOUT_POLICY,
        verify_session: bool = True,
        followup_batches: int = 1,
        failure_retry_delay: float = 60.0,
        stats: CycleStats | None = None,
        clock: Callable[[], datetime] = utc_now,
        stop_event: threading.Event | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if followup_batches < 0:
            raise ValueError("followup_batches must not be negative")
        self.client = client
        self.credentials = credentials
        self.notifier = notifier
        self.login_policy = login_policy
        self.logout_policy = logout_policy
        self.verify_session = verify_session
        self.followup_batches = followup_batches
        self.failure_retry_delay = failure_retry_delay
        self.stats = stats if stats is not None else CycleStats()
        self.clock = clock
        self.stop_event = stop_event
        self.sleep = sleep

        self.session = SessionState()
        self.next_action = NextAction.LOGIN
        self.state = EngineState.IDLE
        self._guard = threading.Lock()
        self._override_delay: float | None = None

    @property
    def cycle_running(self) -> bool:
        return self._guard.locked()

    def consume_next_delay(self) -> float | None:
        """Return and clear the one-shot delay override for the next tick."""
        delay, self._override_delay = self._override_delay, None
        return delay

    def run_cycle(self) -> CycleOutcome:
        """Run one cycle, or do nothing if a cycle is already running."""
        if not self._guard.acquire(blocking=False):
            LOG.warning("cycle_skipped", reason="already_running")
            return CycleOutcome.skipped_cycle()

        started = time.monotonic()
        action = self.next_action
        try:
            self._override_delay = None
            self.state = (
                EngineState.RUNNING_LOGIN
                if action is NextAction.LOGIN
                else EngineState.RUNNING_LOGOUT
            )
            self.stats.mark_started(self.clock())
            LOG.info("cycle_started", action=action.value)
            try:
                if action is NextAction.LOGOUT:
                    outcome = self._run_logout()
                else:
                    outcome = self._run_login()
            except Exception as exc:
                error = CycleError(f"unexpected error during {action.value}: {exc}")
                LOG.exception("cycle_internal_error", action=action.value)
                self.stats.record_failure(str(error))
                self.next_action = (
                    NextAction.LOGOUT if self.session.authenticated else NextAction.LOGIN
                )
                outcome = CycleOutcome(action=action, success=False, error=str(error))
        finally:
            self.state = (
                EngineState.COOLDOWN if self._override_delay is not None else EngineState.IDLE
            )
            self._guard.release()

        outcome = replace(outcome, duration=time.monotonic() - started)
        LOG.info(
            "cycle_completed",
            action=action.value,
            success=outcome.success,
            attempts=outcome.attempts,
            duration=f"{outcome.duration:.2f}s",
            next_action=self.next_action.value,
        )
        return outcome

    def _retry(self, operation: Callable[[], Any], policy: RetryPolicy, name: str) -> Any:
        return retry(
            operation,
            policy,
            name=name,
            retry_on=(AuthError,),
            stop_event=self.stop_event,
            sleep=self.sleep,
        )

    def _run_logout(self) -> CycleOutcome:
        credential = self.session.credential
        if credential is None:
            LOG.info("logout_skipped", reason="no_session")
            self.stats.record_success()
            self.next_action = NextAction.LOGIN
            return CycleOutcome(action=NextAction.LOGOUT, success=True)

        attempts = 0

        def attempt() -> None:
            nonlocal attempts
            attempts += 1
            self.client.logout(credential)

        try:
            self._retry(attempt, self.logout_policy, "logout")
        except (RetryExhaustedError, RetryInterruptedError) as exc:
            error = _describe(exc)
            LOG.warning("logout_failed", attempts=attempts, error=error)
            self.stats.record_failure(error)
            outcome = CycleOutcome(
                action=NextAction.LOGOUT, success=False, attempts=attempts, error=error
            )
        else:
            LOG.info("logout_succeeded", attempts=attempts)
            self.stats.record_success()
            outcome = CycleOutcome(action=NextAction.LOGOUT, success=True, attempts=attempts)

        # A failed logout must not block the next login.
        self.session.clear()
        self.next_action = NextAction.LOGIN
        return outcome

    def _run_login(self) -> CycleOutcome:
        attempts = 0

        def attempt() -> tuple[SessionCredential, str | None]:
            nonlocal attempts
            attempts += 1
            credential = self.client.login(self.credentials)
            account = self.client.verify(credential) if self.verify_session else None
            return credential, account

        batches = 1 + self.followup_batches
        alerted = False
        error: str | None = None

        for batch in range(1, batches + 1):
            try:
                credential, account = self._retry(attempt, self.login_policy, "login")
            except RetryExhaustedError as exc:
                error = _describe(exc)
                self.stats.set_last_error(error)
                LOG.error(
                    "login_batch_exhausted",
                    batch=batch,
                    batches=batches,
                    attempts=exc.attempts,
                    error=error,
                )
                if batch == 1:
                    alerted = self.notifier.notify_exhausted(
                        {
                            "error": error,
                            "attempts": exc.attempts,
                            "followup_batches": self.followup_batches,
                        }
                    )
                continue
            except RetryInterruptedError as exc:
                error = _describe(exc)
                LOG.warning("login_interrupted", attempts=attempts)
                break

            self.session.authenticate(credential, account)
            self.stats.record_success()
            self.stats.set_last_error(None)
            self.notifier.clear()
            self.next_action = NextAction.LOGOUT
            LOG.info(
                "login_succeeded",
                attempts=attempts,
                batch=batch,
                account=account or "N/A",
            )
            return CycleOutcome(
                action=NextAction.LOGIN, success=True, attempts=attempts, alerted=alerted
            )

        self.stats.record_failure(error)
        self.next_action = NextAction.LOGIN
        if not (self.stop_event is not None and self.stop_event.is_set()):
            self._override_delay = self.failure_retry_delay
        LOG.error(
            "login_failed",
            attempts=attempts,
            retry_in=self._override_delay,
            error=error,
        )
        return CycleOutcome(
            action=NextAction.LOGIN,
            success=False,
            attempts=attempts,
            error=error,
            alerted=alerted,
        )

    def shutdown_logout(self, timeout: float) -> bool:
        """Best-effort single logout used during shutdown.

        Returns:
            True if the backend confirmed the logout.
        """
        if not self._guard.acquire(timeout=timeout):
            LOG.warning("shutdown_logout_skipped", reason="cycle_still_running")
            return False
        try:
            credential = self.session.credential
            if credential is None:
                return False
            LOG.info("shutdown_logout_started")
            try:
                self.client.logout(credential, timeout=timeout)
            except AuthError as exc:
                LOG.warning("shutdown_logout_failed", error=str(exc))
                return False
            LOG.info("shutdown_logout_succeeded")
            return True
        finally:
            self.session.clear()
            self._guard.release()


def _describe(exc: Exception) -> str:
    """Human-readable description of a retry failure."""
    if isinstance(exc, RetryExhaustedError):
        return str(exc.last_error)
    if isinstance(exc, RetryInterruptedError):
        return "interrupted by shutdown"
    return str(exc)
