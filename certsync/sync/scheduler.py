"""Cancellable periodic runner with exponential backoff and jitter."""

import logging
import random
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicSync:
    """Run a sync task on a background thread at a fixed interval.

    The task returns an object with a ``has_failures`` attribute, or None when
    it did not run. Failed runs (or runs that raise) double the delay up to
    ``backoff_max_seconds``; a clean run resets it.
    """

    def __init__(
        self,
        task: Callable[[], Optional[object]],
        interval_seconds: float = 30.0,
        backoff_max_seconds: float = 600.0,
        jitter_seconds: float = 5.0,
    ):
        """Initialize scheduler (not started)."""
        self.task = task
        self.interval_seconds = interval_seconds
        self.backoff_max_seconds = max(backoff_max_seconds, interval_seconds)
        self.jitter_seconds = jitter_seconds
        self.consecutive_failures = 0
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background thread. No-op if already running."""
        if self.is_running:
            return
        self._stop.clear()
        self._wake.clear()
        self._thread = threading.Thread(
            target=self._run, name="certsync-periodic-sync", daemon=True
        )
        self._thread.start()
        logger.info(f"Periodic sync started (every {self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the background thread, waiting up to timeout for it to exit."""
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Periodic sync thread did not stop within timeout")
            self._thread = None
        logger.info("Periodic sync stopped")

    def trigger(self) -> None:
        """Run the task as soon as possible instead of waiting for the timer."""
        self._wake.set()

    def next_delay(self) -> float:
        """Seconds until the next run."""
        delay = min(
            self.interval_seconds * (2 ** min(self.consecutive_failures, 16)),
            self.backoff_max_seconds,
        )
        if self.jitter_seconds > 0:
            delay += random.uniform(0, self.jitter_seconds)
        return delay

    def _run(self) -> None:
        while not self._stop.is_set():
            self._wake.wait(self.next_delay())
            self._wake.clear()
            if self._stop.is_set():
                break
            self.run_once()

    def run_once(self) -> None:
        """Run the task once, updating the backoff state. Never raises."""
        try:
            result = self.task()
        except Exception as e:
            self.consecutive_failures += 1
            logger.error(f"Periodic sync failed: {e}", exc_info=True)
            return

        if result is None:
            return
        if getattr(result, "has_failures", False):
            self.consecutive_failures += 1
            logger.warning(
                f"Sync finished with failures; backing off ({self.consecutive_failures} in a row)"
            )
        else:
            self.consecutive_failures = 0
