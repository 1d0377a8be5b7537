"""Tests for the in-process recurring timer."""

import threading
import time

import pytest

from services.scheduler import AlertScheduler


class TestAlertScheduler:
    """Test suite for AlertScheduler."""

    def test_rejects_non_positive_interval(self) -> None:
        with pytest.raises(ValueError):
            AlertScheduler(lambda: None, interval_seconds=0)

    def test_ticks_on_interval(self) -> None:
        ran = threading.Event()
        calls = []

        def job():
            calls.append(time.monotonic())
            if len(calls) >= 3:
                ran.set()

        scheduler = AlertScheduler(job, interval_seconds=0.01)
        scheduler.start()
        try:
            assert ran.wait(5)
        finally:
            scheduler.shutdown(wait=True, timeout=5)

        assert scheduler.running is False
        assert scheduler.ticks >= 3

    def test_run_on_start(self) -> None:
        ran = threading.Event()
        scheduler = AlertScheduler(ran.set, interval_seconds=3600, run_on_start=True)

        scheduler.start()
        try:
            assert ran.wait(5)
        finally:
            scheduler.shutdown(wait=True, timeout=5)

        assert scheduler.ticks == 1

    def test_shutdown_cancels_pending_ticks(self) -> None:
        calls = []
        scheduler = AlertScheduler(lambda: calls.append(1), interval_seconds=3600)

        scheduler.start()
        scheduler.shutdown(wait=True, timeout=5)

        assert calls == []
        assert scheduler.running is False

    def test_shutdown_drains_running_job(self) -> None:
        started = threading.Event()
        finished = []

        def slow_job():
            started.set()
            time.sleep(0.2)
            finished.append(True)

        scheduler = AlertScheduler(slow_job, interval_seconds=3600, run_on_start=True)
        scheduler.start()
        assert started.wait(5)

        scheduler.shutdown(wait=True, timeout=5)

        assert finished == [True]

    def test_ticks_never_overlap(self) -> None:
        active = []
        overlaps = []
        done = threading.Event()

        def job():
            if active:
                overlaps.append(True)
            active.append(1)
            time.sleep(0.03)
            active.pop()
            if scheduler.ticks >= 3:
                done.set()

        scheduler = AlertScheduler(job, interval_seconds=0.005)
        scheduler.start()
        try:
            assert done.wait(5)
        finally:
            scheduler.shutdown(wait=True, timeout=5)

        assert overlaps == []

    def test_failing_job_keeps_scheduler_alive(self) -> None:
        done = threading.Event()
        calls = []

        def job():
            calls.append(1)
            if len(calls) >= 2:
                done.set()
            raise RuntimeError("boom")

        scheduler = AlertScheduler(job, interval_seconds=0.01)
        scheduler.start()
        try:
            assert done.wait(5)
        finally:
            scheduler.shutdown(wait=True, timeout=5)
