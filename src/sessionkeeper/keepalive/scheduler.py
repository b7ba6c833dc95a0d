"""Single-threaded repeating scheduler for keep-alive cycles.

Ticks run one after another on a dedicated thread; the next tick is timed
from the end of the previous one, so ticks never overlap. Waiting happens on
a ``threading.Event`` so ``stop()`` takes effect immediately.
"""

import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from sessionkeeper.alerts import utc_now
from sessionkeeper.logging import get_logger

LOG = get_logger(__name__)


class Scheduler:
    """Invoke ``tick`` now and then every ``interval`` seconds until stopped.

    Args:
        tick: Callable run on every tick. Exceptions are logged and swallowed
            so the timer keeps going.
        interval: Seconds between ticks.
        next_delay: Optional callable consulted after each tick; a non-None
            return value replaces ``interval`` for the following wait only.
        on_schedule: Called with the time of the next tick after every tick.
        clock: Returns the current UTC time.
        stop_event: Event used for waiting; shared with the engine so that a
            stop also interrupts backoff waits inside a cycle.
        run_immediately: Run the first tick at start instead of after one interval.
    """

    def __init__(
        self,
        tick: Callable[[], Any],
        interval: float,
        *,
        next_delay: Callable[[], float | None] | None = None,
        on_schedule: Callable[[datetime], None] | None = None,
        clock: Callable[[], datetime] = utc_now,
        stop_event: threading.Event | None = None,
        run_immediately: bool = True,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.tick = tick
        self.interval = interval
        self.next_delay = next_delay
        self.on_schedule = on_schedule
        self.clock = clock
        self.stop_event = stop_event if stop_event is not None else threading.Event()
        self.run_immediately = run_immediately
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start ticking on a background thread."""
        if self.running:
            raise RuntimeError("scheduler already started")
        self.stop_event.clear()
        self._thread = threading.Thread(
            target=self.run_forever,
            name="keepalive-scheduler",
            daemon=True,
        )
        self._thread.start()
        LOG.info("scheduler_started", interval=self.interval)

    def stop(self, timeout: float | None = None) -> None:
        """Stop ticking and wait up to ``timeout`` seconds for the current tick."""
        self.stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                LOG.warning("scheduler_stop_timed_out", timeout=timeout)
            else:
                LOG.info("scheduler_stopped")

    def run_forever(self) -> None:
        """Tick loop; returns once the stop event is set."""
        delay = 0.0
        if not self.run_immediately:
            delay = self.interval
            self._announce(delay)
        while not self.stop_event.wait(delay):
            delay = self.tick_once()

    def tick_once(self) -> float:
        """Run a single tick and return the delay before the next one."""
        try:
            self.tick()
        except Exception:
            LOG.exception("scheduler_tick_failed")

        delay = self.interval
        if self.next_delay is not None:
            try:
                override = self.next_delay()
            except Exception:
                LOG.exception("scheduler_next_delay_failed")
                override = None
            if override is not None:
                delay = override
        self._announce(delay)
        return delay

    def _announce(self, delay: float) -> None:
        next_run = self.clock() + timedelta(seconds=delay)
        if self.on_schedule is not None:
            self.on_schedule(next_run)
        LOG.info("next_run_scheduled", next_run=next_run.isoformat(), delay=delay)
