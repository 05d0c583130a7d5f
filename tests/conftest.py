"""
Shared fixtures for the Auspex test suite.
"""
import os
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest

from auspex.alerting import (
    CorrelationEngine,
    DeliveryAuditor,
    NotificationDispatcher,
    SuppressionEvaluator,
    build_notifiers,
)
from auspex.config import AlerterConfig
from auspex.logging_config import reset_logging_config
from auspex.storage import AlertStore


# Monday, 2 June 2025
MONDAY_AFTERNOON = datetime(2025, 6, 2, 14, 0, 0)


class FakeClock:
    """Controllable time source; call it like datetime.now."""

    def __init__(self, start: datetime = MONDAY_AFTERNOON):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeResponse:
    def __init__(self, status_code: int):
        self.status_code = status_code


class FakeSession:
    """Stands in for requests.Session, recording every POST."""

    def __init__(self, status_code: int = 202, error: Optional[Exception] = None):
        self.status_code = status_code
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def post(self, url: str, json: Any = None, timeout: Any = None) -> FakeResponse:
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return FakeResponse(self.status_code)


class FakeMailer:
    """Stands in for SMTPMailer, recording every message."""

    configured = True

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.sent: List[Dict[str, str]] = []

    def send(self, sender: str, recipient: str, subject: str, body: str) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append(
            {"sender": sender, "recipient": recipient, "subject": subject, "body": body}
        )


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    reset_logging_config()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep AUSPEX_* variables from the developer shell out of the tests."""
    for key in list(os.environ):
        if key.startswith("AUSPEX_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    alert_store = AlertStore(tmp_path / "auspex.db")
    yield alert_store
    alert_store.close()


@pytest.fixture
def target(store):
    return store.add_target("core-sw-01", "10.0.0.1")


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def config(tmp_path) -> AlerterConfig:
    return AlerterConfig(
        db_path=str(tmp_path / "auspex.db"),
        smtp_user="alerts",
        smtp_password="secret",
        smtp_from="auspex@example.com",
        dashboard_url="http://monitor.example.com",
    )


@pytest.fixture
def notifiers(config, session, mailer, clock):
    return build_notifiers(config, session=session, mailer=mailer, clock=clock)


@pytest.fixture
def dispatcher(store, notifiers, clock):
    return NotificationDispatcher(store, notifiers, DeliveryAuditor(store, clock), clock)


@pytest.fixture
def engine(store, dispatcher, clock):
    return CorrelationEngine(store, dispatcher, SuppressionEvaluator(store), clock)


@pytest.fixture
def poll(store, clock):
    """Record a sample for a target, one second after the previous one."""
    def _poll(target_id: int, status: str, latency_ms: int = 0, message: str = "") -> None:
        clock.advance(seconds=1)
        store.record_poll_result(target_id, status, latency_ms, message, polled_at=clock())
    return _poll
