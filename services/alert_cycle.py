# services/alert_cycle.py
"""
Exchange rate check-and-notify cycle

One cycle is: fetch one rate sample, classify it, and (for timer triggers)
send the alert to every subscriber. Request triggers only need the message
for display and fall back to the neutral message on any upstream failure.

Error policy:
- RateSourceError aborts the cycle; no notifications are sent
- StoreError aborts the notification half of the cycle
- send failures are logged per recipient and never stop the batch
No cycle ever raises to its caller.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from core.exceptions import RateSourceError, SendError, StoreError
from core.models import AlertMessage, CycleReport, RateSample
from core.rate_evaluator import evaluate, unknown_message, DEFAULT_FAVORABLE_TEXT, DEFAULT_UNFAVORABLE_TEXT
from core.rate_source import RateSource
from services.notifier import Notifier

logger = logging.getLogger(__name__)


class AlertCycle:
    """
    Orchestrates RateSource -> evaluate -> SubscriberStore -> Notifier

    Scheduled cycles never overlap: a tick that arrives while another cycle
    is in flight is skipped, not queued. The local lock covers this process;
    the guard covers every process sharing it.
    """

    def __init__(self,
                 rate_source: RateSource,
                 store,
                 notifier: Notifier,
                 threshold: float,
                 favorable_text: str = DEFAULT_FAVORABLE_TEXT,
                 unfavorable_text: str = DEFAULT_UNFAVORABLE_TEXT,
                 notify_workers: int = 1,
                 guard=None,
                 clock: Callable[[], datetime] = None):
        """
        Args:
            rate_source: Provider of one RateSample per fetch
            store: Object with list_all() returning subscriber rows
            notifier: Transport sending one alert to one subscriber
            threshold: Favorable-rate threshold (strict greater-than)
            notify_workers: 1 for sequential sends, more for a bounded pool
            guard: Optional cross-process lock with non-blocking acquire()
                and release(), e.g. RedisCycleLock
        """
        self.rate_source = rate_source
        self.store = store
        self.notifier = notifier
        self.threshold = threshold
        self.favorable_text = favorable_text
        self.unfavorable_text = unfavorable_text
        self.notify_workers = max(1, int(notify_workers))
        self.guard = guard
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._cycle_lock = threading.Lock()
        self._idle = threading.Condition()
        self._in_flight = False
        self.last_report: Optional[CycleReport] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def evaluate_sample(self, sample: RateSample) -> AlertMessage:
        return evaluate(
            sample.value,
            self.threshold,
            favorable_text=self.favorable_text,
            unfavorable_text=self.unfavorable_text
        )

    def current_message(self) -> AlertMessage:
        """Fetch and classify the current rate for display, never raising"""
        try:
            sample = self.rate_source.fetch()
        except RateSourceError as e:
            logger.error(f"Error fetching exchange rate: {e}")
            return unknown_message()
        except Exception as e:  # noqa: BLE001
            logger.error(f"Unexpected error fetching exchange rate: {e}", exc_info=True)
            return unknown_message()

        message = self.evaluate_sample(sample)
        logger.info(f"Exchange rate fetched: {sample.value:.4f}. Exchange rate message: {message.text}")
        return message

    def run_scheduled(self) -> CycleReport:
        """
        Execute one timer-triggered check-and-notify pass

        Returns:
            CycleReport; report.skipped is set when another cycle was in flight
        """
        report = CycleReport(started_at=self._clock())

        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Previous alert cycle still running, skipping this tick")
            return self._skip(report, 'cycle already in flight')

        if self.guard is not None and not self.guard.acquire():
            self._cycle_lock.release()
            logger.warning("Alert cycle running in another process, skipping this tick")
            return self._skip(report, 'cycle running in another process')

        with self._idle:
            self._in_flight = True

        try:
            self._run(report)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Alert cycle failed unexpectedly: {e}", exc_info=True)
            report.aborted = True
            report.reason = f"unexpected error: {e}"
        finally:
            report.finished_at = self._clock()
            self.last_report = report
            if self.guard is not None:
                self.guard.release()
            with self._idle:
                self._in_flight = False
                self._idle.notify_all()
            self._cycle_lock.release()

        logger.info(
            f"Alert cycle finished in {report.duration_seconds:.2f}s: "
            f"{report.sent} sent, {len(report.failed)} failed"
            + (f", aborted ({report.reason})" if report.aborted else "")
        )
        return report

    def _skip(self, report: CycleReport, reason: str) -> CycleReport:
        report.skipped = True
        report.reason = reason
        report.finished_at = self._clock()
        return report

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no cycle is in flight; False on timeout"""
        with self._idle:
            return self._idle.wait_for(lambda: not self._in_flight, timeout=timeout)

    def _run(self, report: CycleReport) -> None:
        logger.info("Checking exchange rate...")

        try:
            sample = self.rate_source.fetch()
        except RateSourceError as e:
            logger.error(f"Error fetching exchange rate, skipping notifications: {e}")
            report.aborted = True
            report.reason = f"fetch failed: {e}"
            return

        report.sample = sample
        report.message = self.evaluate_sample(sample)
        logger.info(f"Exchange rate check complete. Rate: {sample.value:.4f} ({report.message.classification.value})")

        try:
            subscribers = self.store.list_all()
        except StoreError as e:
            logger.error(f"Database error loading subscribers: {e}")
            report.aborted = True
            report.reason = f"store failed: {e}"
            return

        report.recipients = len(subscribers)
        logger.info(f"Notifying {report.recipients} subscribers about exchange rate update...")
        self._notify_all(subscribers, report.message, sample.fetched_at, report)

    def _notify_all(self, subscribers: Sequence, message: AlertMessage,
                    issued_at: datetime, report: CycleReport) -> None:
        if self.notify_workers == 1 or len(subscribers) <= 1:
            results = [self._send_one(s, message, issued_at) for s in subscribers]
        else:
            with ThreadPoolExecutor(max_workers=self.notify_workers,
                                    thread_name_prefix='alert-send') as pool:
                results = list(pool.map(lambda s: self._send_one(s, message, issued_at), subscribers))

        for subscriber, ok in zip(subscribers, results):
            if ok:
                report.sent += 1
            else:
                report.failed.append(subscriber.email)

    def _send_one(self, subscriber, message: AlertMessage, issued_at: datetime) -> bool:
        """Send to one subscriber; failures are logged and reported as False"""
        try:
            logger.info(f"Sending email to {subscriber.email}")
            self.notifier.send(subscriber, message, issued_at=issued_at)
        except SendError as e:
            logger.error(f"Failed sending to {subscriber.email}: {e}")
            return False
        except Exception as e:  # noqa: BLE001
            logger.error(f"Unexpected error sending to {subscriber.email}: {e}", exc_info=True)
            return False

        logger.info(f"Email sent to {subscriber.email}")
        return True
