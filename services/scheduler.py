# services/scheduler.py
"""
In-process recurring timer for the alert cycle
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 12 * 60 * 60


class AlertScheduler:
    """
    Runs a job on a fixed period in a daemon thread

    The job runs on the scheduler thread itself, so a slow job delays the
    next tick instead of overlapping it. shutdown() stops the timer and
    waits for the running job to finish.
    """

    def __init__(self,
                 job: Callable[[], object],
                 interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
                 run_on_start: bool = False,
                 name: str = 'rate-alert-scheduler'):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.job = job
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self.name = name
        self.ticks = 0

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return

        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info(f"Alert scheduler started, interval {self.interval_seconds:.0f}s")

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Cancel future ticks and optionally drain the in-flight job"""
        self._stop.set()
        if wait and self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Alert scheduler did not stop within the timeout")
        logger.info("Alert scheduler stopped")

    def _loop(self) -> None:
        if self.run_on_start:
            self._tick()

        while not self._stop.wait(self.interval_seconds):
            self._tick()

    def _tick(self) -> None:
        self.ticks += 1
        try:
            self.job()
        except Exception as e:  # noqa: BLE001
            logger.error(f"Scheduled alert job failed: {e}", exc_info=True)
