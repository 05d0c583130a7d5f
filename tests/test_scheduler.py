"""
Tests for the fixed-interval scheduler.
"""
import threading

import pytest

from auspex.scheduler import IntervalScheduler


class SteppingClock:
    """Monotonic clock that advances a fixed step on every read."""

    def __init__(self, step: float):
        self.step = step
        self.value = 0.0

    def __call__(self) -> float:
        self.value += self.step
        return self.value


class RecordingEvent(threading.Event):
    """Event that records wait() delays instead of sleeping."""

    def __init__(self):
        super().__init__()
        self.waits = []

    def wait(self, timeout=None):
        self.waits.append(timeout)
        return self.is_set()


def test_runs_immediately_and_until_max_runs() -> None:
    """Test that the task runs right away and max_runs bounds the loop."""
    calls = []
    event = RecordingEvent()
    scheduler = IntervalScheduler(30, lambda: calls.append(1), stop_event=event, max_runs=3,
                                  monotonic=SteppingClock(1))

    assert scheduler.run_forever() == 3
    assert len(calls) == 3
    # each run "takes" one second of the 30 second interval
    assert event.waits == [29, 29]


def test_overrun_starts_next_run_without_waiting() -> None:
    """Test that a run longer than the interval delays, not overlaps."""
    event = RecordingEvent()
    scheduler = IntervalScheduler(5, lambda: None, stop_event=event, max_runs=3,
                                  monotonic=SteppingClock(10))

    scheduler.run_forever()

    assert event.waits == []


def test_task_exception_does_not_stop_loop(caplog) -> None:
    """Test that failures are logged and the next run still happens."""
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("database is locked")

    scheduler = IntervalScheduler(1, flaky, stop_event=RecordingEvent(), max_runs=2,
                                  monotonic=SteppingClock(0))

    scheduler.run_forever()

    assert len(calls) == 2
    assert "Scheduled task failed on run 1" in caplog.text


def test_stop_ends_loop() -> None:
    """Test that stop() called from the task ends the loop."""
    runs = []
    scheduler = IntervalScheduler(60, lambda: None, monotonic=SteppingClock(0))

    def task():
        runs.append(1)
        scheduler.stop()

    scheduler.task = task

    assert scheduler.run_forever() == 1
    assert scheduler.stopped is True


def test_invalid_interval() -> None:
    with pytest.raises(ValueError, match="interval_seconds must be positive"):
        IntervalScheduler(0, lambda: None)
