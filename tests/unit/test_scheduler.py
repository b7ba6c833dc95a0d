"""Tests for the keep-alive scheduler."""

import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from sessionkeeper.keepalive.scheduler import Scheduler


class TestTickOnce:
    """Tests for Scheduler.tick_once."""

    def test_runs_tick_and_schedules_interval(self, clock):
        tick = MagicMock()
        scheduled = []
        scheduler = Scheduler(tick, 840.0, on_schedule=scheduled.append, clock=clock)

        assert scheduler.tick_once() == 840.0
        tick.assert_called_once()
        assert scheduled == [clock.now + timedelta(seconds=840)]

    def test_override_delay_applies_once(self, clock):
        overrides = iter([60.0, None])
        scheduled = []
        scheduler = Scheduler(
            MagicMock(),
            840.0,
            next_delay=lambda: next(overrides),
            on_schedule=scheduled.append,
            clock=clock,
        )

        assert scheduler.tick_once() == 60.0
        assert scheduler.tick_once() == 840.0
        assert scheduled == [
            clock.now + timedelta(seconds=60),
            clock.now + timedelta(seconds=840),
        ]

    def test_tick_exception_does_not_stop_schedule(self, clock):
        scheduled = []
        scheduler = Scheduler(
            MagicMock(side_effect=RuntimeError("boom")),
            120.0,
            on_schedule=scheduled.append,
            clock=clock,
        )

        assert scheduler.tick_once() == 120.0
        assert scheduled == [clock.now + timedelta(seconds=120)]

    def test_next_delay_exception_falls_back_to_interval(self, clock):
        scheduler = Scheduler(
            MagicMock(),
            120.0,
            next_delay=MagicMock(side_effect=RuntimeError("boom")),
            clock=clock,
        )
        assert scheduler.tick_once() == 120.0

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            Scheduler(MagicMock(), 0)


class TestRunForever:
    """Tests for the scheduler loop."""

    def test_first_tick_runs_immediately(self, clock):
        stop = threading.Event()
        calls = []

        def tick():
            calls.append(len(calls))
            if len(calls) == 3:
                stop.set()

        scheduler = Scheduler(tick, 3600.0, next_delay=lambda: 0.0, clock=clock, stop_event=stop)
        scheduler.run_forever()

        assert calls == [0, 1, 2]

    def test_timer_only_start_waits_first(self, clock):
        stop = threading.Event()
        stop.set()
        tick = MagicMock()
        scheduled = []
        scheduler = Scheduler(
            tick,
            300.0,
            on_schedule=scheduled.append,
            clock=clock,
            stop_event=stop,
            run_immediately=False,
        )

        scheduler.run_forever()

        tick.assert_not_called()
        assert scheduled == [clock.now + timedelta(seconds=300)]

    def test_ticks_never_overlap(self, clock):
        stop = threading.Event()
        active = []
        overlaps = []
        count = []

        def tick():
            if active:
                overlaps.append(True)
            active.append(True)
            count.append(1)
            if len(count) >= 5:
                stop.set()
            active.pop()

        Scheduler(tick, 3600.0, next_delay=lambda: 0.0, clock=clock, stop_event=stop).run_forever()

        assert overlaps == []
        assert len(count) == 5


class TestStartStop:
    """Tests for the background thread lifecycle."""

    def test_start_and_stop(self, clock):
        ticked = threading.Event()
        scheduler = Scheduler(ticked.set, 3600.0, clock=clock)

        scheduler.start()
        assert ticked.wait(5)
        assert scheduler.running is True

        scheduler.stop(timeout=5)
        assert scheduler.running is False
        assert scheduler.stop_event.is_set()

    def test_double_start_rejected(self, clock):
        scheduler = Scheduler(MagicMock(), 3600.0, clock=clock)
        scheduler.start()
        try:
            with pytest.raises(RuntimeError):
                scheduler.start()
        finally:
            scheduler.stop(timeout=5)

    def test_stop_before_start_is_harmless(self, clock):
        Scheduler(MagicMock(), 60.0, clock=clock).stop()
