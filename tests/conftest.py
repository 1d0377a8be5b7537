"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Iterable, List, Optional

import pytest

from core.exceptions import SendError, StoreError
from core.models import RateSample
from core.rate_source import RateSource
from services.notifier import Notifier


class FakeRateSource(RateSource):
    """Rate source returning a fixed value or raising a fixed error."""

    name = 'fake'

    def __init__(self, value: float = 0.10, error: Optional[Exception] = None):
        self.value = value
        self.error = error
        self.calls = 0

    def fetch(self) -> RateSample:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return RateSample(
            value=self.value,
            fetched_at=datetime(2024, 3, 5, 14, 30, 15, tzinfo=timezone.utc),
            quote_rate=2.01 / self.value,
            source=self.name,
        )


class RecordingNotifier(Notifier):
    """Notifier recording every send and failing for selected recipients."""

    name = 'recording'

    def __init__(self, fail_for: Iterable[str] = (), unexpected_for: Iterable[str] = ()):
        super().__init__()
        self.fail_for = set(fail_for)
        self.unexpected_for = set(unexpected_for)
        self.calls: List[str] = []
        self.messages = []

    def send(self, recipient, message, issued_at=None) -> None:
        self.calls.append(recipient.email)
        self.messages.append((message, issued_at))
        if recipient.email in self.fail_for:
            raise SendError(f"mailbox unavailable for {recipient.email}")
        if recipient.email in self.unexpected_for:
            raise RuntimeError("transport crashed")


class FakeStore:
    """In-memory stand-in for SubscriberStore.list_all()."""

    def __init__(self, emails: Iterable[str] = (), error: Optional[Exception] = None):
        self.subscribers = [SimpleNamespace(email=email) for email in emails]
        self.error = error

    def list_all(self):
        if self.error is not None:
            raise self.error
        return list(self.subscribers)


@pytest.fixture
def rate_source() -> FakeRateSource:
    return FakeRateSource(value=0.10)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def subscriber_emails() -> List[str]:
    return ['ana@example.com', 'ben@example.com', 'carla@example.com', 'dev@example.com']


@pytest.fixture
def failing_store() -> FakeStore:
    return FakeStore(error=StoreError("database unavailable"))


@pytest.fixture
def app(rate_source, notifier):
    """Flask app on TestingConfig with injected rate source and notifier."""
    from app import create_app

    flask_app = create_app('testing', rate_source=rate_source, notifier=notifier)
    yield flask_app

    from core.database_models import db
    from services.context import get_services

    get_services(flask_app).shutdown(timeout=1)
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    from services.context import get_services

    return get_services(app)
