"""Tests for the check-and-notify cycle."""

import threading
from unittest.mock import MagicMock

import pytest

from conftest import FakeRateSource, FakeStore, RecordingNotifier
from core.exceptions import FetchError, InvalidRateError, ParseError
from core.models import Classification
from core.rate_source import FreeCurrencyApiSource
from services.alert_cycle import AlertCycle
from services.cycle_lock import RedisCycleLock


def make_cycle(source=None, store=None, notifier=None, **kwargs) -> AlertCycle:
    return AlertCycle(
        rate_source=source or FakeRateSource(0.10),
        store=store if store is not None else FakeStore(),
        notifier=notifier or RecordingNotifier(),
        threshold=0.095,
        **kwargs
    )


def huge_rate_source() -> FreeCurrencyApiSource:
    response = MagicMock(status_code=200)
    response.json.return_value = {"data": {"MXN": 10 ** 400}}
    session = MagicMock()
    session.get.return_value = response
    return FreeCurrencyApiSource(api_key="test-key", session=session)


class TestCurrentMessage:
    """Test suite for the request-triggered display path."""

    def test_favorable_rate(self) -> None:
        message = make_cycle(FakeRateSource(0.10)).current_message()

        assert message.classification is Classification.FAVORABLE
        assert message.text == "Good time to buy!"

    def test_unfavorable_rate(self) -> None:
        message = make_cycle(FakeRateSource(0.08)).current_message()

        assert message.classification is Classification.UNFAVORABLE
        assert message.text == "Bad time to buy."

    @pytest.mark.parametrize("error", [FetchError("timeout"), ParseError("bad body"), InvalidRateError("nan")])
    def test_fetch_failure_renders_neutral_message(self, error) -> None:
        message = make_cycle(FakeRateSource(error=error)).current_message()

        assert message.text == "Unable to fetch exchange rate."
        assert message.color == "gray"
        assert message.classification is Classification.UNKNOWN

    def test_unexpected_error_renders_neutral_message(self) -> None:
        message = make_cycle(FakeRateSource(error=RuntimeError("provider bug"))).current_message()

        assert message.classification is Classification.UNKNOWN

    def test_out_of_range_rate_renders_neutral_message(self) -> None:
        message = make_cycle(huge_rate_source()).current_message()

        assert message.text == "Unable to fetch exchange rate."

    def test_display_never_notifies(self, subscriber_emails) -> None:
        notifier = RecordingNotifier()
        make_cycle(store=FakeStore(subscriber_emails), notifier=notifier).current_message()

        assert notifier.calls == []


class TestRunScheduled:
    """Test suite for the timer-triggered cycle."""

    def test_notifies_every_subscriber(self, subscriber_emails) -> None:
        notifier = RecordingNotifier()
        report = make_cycle(store=FakeStore(subscriber_emails), notifier=notifier).run_scheduled()

        assert sorted(notifier.calls) == sorted(subscriber_emails)
        assert report.recipients == 4
        assert report.sent == 4
        assert report.failed == []
        assert report.aborted is False
        assert report.message.classification is Classification.FAVORABLE

    def test_sends_carry_message_and_fetch_time(self, subscriber_emails) -> None:
        source = FakeRateSource(0.10)
        notifier = RecordingNotifier()
        make_cycle(source, FakeStore(subscriber_emails[:1]), notifier).run_scheduled()

        message, issued_at = notifier.messages[0]
        assert message.rate == 0.10
        assert issued_at == source.fetch().fetched_at

    def test_fetch_failure_sends_nothing_and_does_not_raise(self, subscriber_emails) -> None:
        notifier = RecordingNotifier()
        cycle = make_cycle(FakeRateSource(error=FetchError("timeout")), FakeStore(subscriber_emails), notifier)

        report = cycle.run_scheduled()

        assert notifier.calls == []
        assert report.aborted is True
        assert "timeout" in report.reason
        assert report.sample is None

    def test_out_of_range_rate_aborts_without_raising(self, subscriber_emails) -> None:
        notifier = RecordingNotifier()
        cycle = make_cycle(huge_rate_source(), store=FakeStore(subscriber_emails), notifier=notifier)

        report = cycle.run_scheduled()

        assert report.aborted is True
        assert notifier.calls == []

    def test_unexpected_fetch_error_aborts_without_raising(self, subscriber_emails) -> None:
        notifier = RecordingNotifier()
        cycle = make_cycle(FakeRateSource(error=OverflowError("int too large")),
                           store=FakeStore(subscriber_emails), notifier=notifier)

        report = cycle.run_scheduled()

        assert report.aborted is True
        assert "int too large" in report.reason
        assert notifier.calls == []
        assert cycle.last_report is report

    def test_store_failure_aborts_notifications(self, failing_store) -> None:
        notifier = RecordingNotifier()
        report = make_cycle(store=failing_store, notifier=notifier).run_scheduled()

        assert notifier.calls == []
        assert report.aborted is True
        assert report.message is not None

    @pytest.mark.parametrize("failing_index", [0, 1, 3])
    def test_one_failure_does_not_stop_the_batch(self, subscriber_emails, failing_index) -> None:
        failing = subscriber_emails[failing_index]
        notifier = RecordingNotifier(fail_for=[failing])

        report = make_cycle(store=FakeStore(subscriber_emails), notifier=notifier).run_scheduled()

        assert notifier.calls == subscriber_emails
        assert report.sent == 3
        assert report.failed == [failing]
        assert report.aborted is False

    def test_unexpected_exception_is_isolated(self, subscriber_emails) -> None:
        notifier = RecordingNotifier(unexpected_for=[subscriber_emails[0]])

        report = make_cycle(store=FakeStore(subscriber_emails), notifier=notifier).run_scheduled()

        assert len(notifier.calls) == 4
        assert report.failed == [subscriber_emails[0]]

    def test_bounded_pool_still_reaches_everyone(self, subscriber_emails) -> None:
        notifier = RecordingNotifier(fail_for=[subscriber_emails[2]])
        cycle = make_cycle(store=FakeStore(subscriber_emails), notifier=notifier, notify_workers=3)

        report = cycle.run_scheduled()

        assert sorted(notifier.calls) == sorted(subscriber_emails)
        assert report.sent == 3
        assert report.failed == [subscriber_emails[2]]

    def test_no_subscribers(self) -> None:
        report = make_cycle(store=FakeStore()).run_scheduled()

        assert report.recipients == 0
        assert report.attempted == 0
        assert report.aborted is False

    def test_repeated_ticks_renotify(self, subscriber_emails) -> None:
        notifier = RecordingNotifier()
        cycle = make_cycle(store=FakeStore(subscriber_emails), notifier=notifier)

        cycle.run_scheduled()
        cycle.run_scheduled()

        assert len(notifier.calls) == 8
        assert cycle.last_report.sent == 4


class BlockingNotifier(RecordingNotifier):
    """Notifier that holds the first send until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def send(self, recipient, message, issued_at=None) -> None:
        self.entered.set()
        assert self.release.wait(5)
        super().send(recipient, message, issued_at)


class TestNonOverlap:
    """Test suite for the single-flight guard."""

    def test_second_cycle_is_skipped_while_first_in_flight(self, subscriber_emails) -> None:
        notifier = BlockingNotifier()
        cycle = make_cycle(store=FakeStore(subscriber_emails[:1]), notifier=notifier)
        reports = []

        first = threading.Thread(target=lambda: reports.append(cycle.run_scheduled()))
        first.start()
        assert notifier.entered.wait(5)

        second = cycle.run_scheduled()
        assert second.skipped is True
        assert cycle.in_flight is True

        notifier.release.set()
        first.join(5)

        assert reports[0].sent == 1
        assert notifier.calls == subscriber_emails[:1]
        assert cycle.in_flight is False

    def test_wait_idle_drains_in_flight_cycle(self, subscriber_emails) -> None:
        notifier = BlockingNotifier()
        cycle = make_cycle(store=FakeStore(subscriber_emails[:1]), notifier=notifier)

        worker = threading.Thread(target=cycle.run_scheduled)
        worker.start()
        assert notifier.entered.wait(5)

        assert cycle.wait_idle(timeout=0.05) is False
        notifier.release.set()
        assert cycle.wait_idle(timeout=5) is True
        worker.join(5)

    def test_cycles_sharing_a_guard_do_not_overlap(self, subscriber_emails) -> None:
        shared = threading.Lock()
        client = MagicMock()
        client.lock.return_value = shared
        notifier = BlockingNotifier()
        store = FakeStore(subscriber_emails[:1])
        first_cycle = make_cycle(store=store, notifier=notifier, guard=RedisCycleLock(client))
        second_cycle = make_cycle(store=store, notifier=notifier, guard=RedisCycleLock(client))
        reports = []

        worker = threading.Thread(target=lambda: reports.append(first_cycle.run_scheduled()))
        worker.start()
        assert notifier.entered.wait(5)

        second = second_cycle.run_scheduled()
        assert second.skipped is True
        assert second.reason == "cycle running in another process"
        assert second_cycle.in_flight is False

        notifier.release.set()
        worker.join(5)

        assert reports[0].sent == 1
        assert notifier.calls == subscriber_emails[:1]
        assert shared.locked() is False
        assert second_cycle.run_scheduled().sent == 1

    def test_unexpected_error_releases_guard(self) -> None:
        guard = MagicMock()
        guard.acquire.return_value = True
        cycle = make_cycle(FakeRateSource(error=RuntimeError("boom")), guard=guard)

        report = cycle.run_scheduled()

        assert report.aborted is True
        guard.release.assert_called_once()
        assert cycle.in_flight is False

    def test_guard_released_after_abort(self) -> None:
        cycle = make_cycle(FakeRateSource(error=FetchError("timeout")))

        cycle.run_scheduled()
        report = cycle.run_scheduled()

        assert report.skipped is False
        assert report.aborted is True
