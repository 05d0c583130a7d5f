"""
Fixed-interval task runner for the alerter loop.
"""
import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class IntervalScheduler:
    """
    Runs a task once immediately and then every ``interval_seconds``.

    Runs never overlap: the next run starts one interval after the previous
    run started, or right away if the previous run took longer than that.
    Exceptions raised by the task are logged and the loop keeps going.

    Example:
        >>> scheduler = IntervalScheduler(30, engine.run_cycle)
        >>> scheduler.run_forever()  # until scheduler.stop()
    """

    def __init__(
        self,
        interval_seconds: float,
        task: Callable[[], object],
        stop_event: Optional[threading.Event] = None,
        max_runs: Optional[int] = None,
        monotonic: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the scheduler.

        Args:
            interval_seconds: Time between run starts
            task: Callable invoked on each tick
            stop_event: Event that ends the loop when set
            max_runs: Stop after this many runs (None runs until stopped)
            monotonic: Clock used to measure run duration

        Raises:
            ValueError: If interval_seconds is not positive
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

        self.interval_seconds = interval_seconds
        self.task = task
        self.stop_event = stop_event or threading.Event()
        self.max_runs = max_runs
        self.monotonic = monotonic
        self.runs = 0

    def stop(self) -> None:
        """Ask the loop to exit; a run in progress is allowed to finish."""
        self.stop_event.set()

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def run_once(self) -> None:
        """Run the task a single time, logging any exception it raises."""
        self.runs += 1
        try:
            self.task()
        except Exception:
            logger.exception(f"Scheduled task failed on run {self.runs}")

    def run_forever(self) -> int:
        """
        Loop until stopped or ``max_runs`` is reached.

        Returns:
            Number of runs performed
        """
        logger.info(f"Scheduler started (interval: {self.interval_seconds}s)")

        while not self.stopped:
            started = self.monotonic()
            self.run_once()

            if self.max_runs is not None and self.runs >= self.max_runs:
                break

            elapsed = self.monotonic() - started
            delay = self.interval_seconds - elapsed
            if delay <= 0:
                logger.warning(
                    f"Run took {elapsed:.1f}s, longer than the {self.interval_seconds}s interval"
                )
                continue

            # returns early when stop() is called
            self.stop_event.wait(delay)

        logger.info(f"Scheduler stopped after {self.runs} run(s)")
        return self.runs
