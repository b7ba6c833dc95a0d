"""Capped exponential backoff retry.

The retrier knows nothing about login or logout. It calls an operation up to
``max_attempts`` times, waiting ``min(base_delay * 2**(k-2), max_delay)``
seconds before attempt *k* (k >= 2), and returns the first success.

Waits go through a ``threading.Event`` when one is supplied so that a
shutdown request can cut a backoff short instead of sleeping it out.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from sessionkeeper.exceptions import RetryExhaustedError, RetryInterruptedError
from sessionkeeper.logging import get_logger

LOG = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and delay bounds for one retried operation.

    Attributes:
        max_attempts: Total number of attempts (at least 1).
        base_delay: Delay in seconds before the second attempt.
        max_delay: Ceiling in seconds for any single delay.
    """

    max_attempts: int
    base_delay: float
    max_delay: float

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")

    def delay_before(self, attempt: int) -> float:
        """Delay in seconds before ``attempt`` (1-based); zero for the first."""
        if attempt < 2:
            return 0.0
        return min(self.base_delay * (2 ** (attempt - 2)), self.max_delay)

    def delays(self) -> list[float]:
        """Delays d_2 .. d_max_attempts."""
        return [self.delay_before(k) for k in range(2, self.max_attempts + 1)]


def retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    name: str = "operation",
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    stop_event: threading.Event | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation`` with capped exponential backoff.

    Args:
        operation: Zero-argument callable to attempt.
        policy: Attempt budget and delay bounds.
        name: Label used in log events.
        retry_on: Exception types that count as a failed attempt. Anything
            else propagates immediately.
        stop_event: When given, backoff waits use ``stop_event.wait`` and a set
            event aborts the remaining attempts.
        sleep: Sleep function used when no stop event is given.

    Returns:
        The first successful result.

    Raises:
        RetryExhaustedError: If every attempt failed.
        RetryInterruptedError: If ``stop_event`` was set before or during a wait.
    """
    last_error: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        if attempt > 1:
            delay = policy.delay_before(attempt)
            LOG.warning(
                "retry_backoff",
                operation=name,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay=delay,
            )
            if stop_event is not None:
                if stop_event.wait(delay):
                    raise RetryInterruptedError(attempt - 1, last_error)
            else:
                sleep(delay)
        elif stop_event is not None and stop_event.is_set():
            raise RetryInterruptedError(0)

        try:
            result = operation()
        except retry_on as exc:
            last_error = exc  # type: ignore[assignment]
            LOG.warning(
                "retry_attempt_failed",
                operation=name,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                error=str(exc),
            )
            continue

        if attempt > 1:
            LOG.info("retry_recovered", operation=name, attempt=attempt)
        return result

    assert last_error is not None
    raise RetryExhaustedError(policy.max_attempts, last_error) from last_error
