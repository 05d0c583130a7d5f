"""
Tests for exception handling and custom exception types.

Verifies that specific exceptions are raised appropriately.
"""

from datetime import datetime

import pytest

from auspex.config import AlerterConfig
from auspex.config_loader import load_config_file
from auspex.exceptions import (
    AuspexError,
    ChannelConfigError,
    ConfigurationError,
    DeliveryError,
    InvalidConfigError,
    NotificationError,
    StoreError,
    StoreUnavailableError,
    UnsupportedChannelError,
)
from auspex.models import AlertType, PagerDutyChannelConfig, StatusSample
from auspex.storage import AlertStore


NOW = datetime(2025, 6, 2, 14, 0, 0)


@pytest.fixture
def sample():
    return StatusSample(
        target_id=1,
        target_name="core-sw-01",
        host="10.0.0.1",
        status="down",
        message="timeout",
        sampled_at=NOW,
    )


def test_exception_hierarchy():
    """Test that every exception derives from AuspexError."""
    assert issubclass(StoreUnavailableError, StoreError)
    assert issubclass(ChannelConfigError, NotificationError)
    assert issubclass(DeliveryError, NotificationError)
    assert issubclass(UnsupportedChannelError, NotificationError)
    assert issubclass(InvalidConfigError, ConfigurationError)

    for exc in (StoreError, NotificationError, ConfigurationError):
        assert issubclass(exc, AuspexError)


def test_invalid_config_is_value_error():
    """Test that callers catching ValueError also see InvalidConfigError."""
    with pytest.raises(ValueError):
        AlerterConfig(check_interval_seconds=0).validate()


def test_invalid_config_lists_every_problem():
    config = AlerterConfig(dedup_window_minutes=-1, smtp_port=70000, log_format="xml")

    with pytest.raises(InvalidConfigError) as exc_info:
        config.validate()

    message = str(exc_info.value)
    assert "dedup_window_minutes" in message
    assert "smtp_port" in message
    assert "log_format" in message


def test_store_unavailable(tmp_path):
    """Test StoreUnavailableError for an unopenable database path."""
    with pytest.raises(StoreUnavailableError, match="Cannot"):
        AlertStore(tmp_path / "nope" / "auspex.db")


def test_store_error_wraps_sqlite_errors(store, target):
    """Test that constraint violations surface as StoreError, not sqlite3 errors."""
    rule = store.add_rule(target.id)
    store.create_alert(rule, AlertType.OPENED, "down", NOW)

    with pytest.raises(StoreError) as exc_info:
        store.create_alert(rule, AlertType.OPENED, "down", NOW)

    assert not isinstance(exc_info.value, StoreUnavailableError)
    assert exc_info.value.__cause__ is not None


def test_store_error_for_unknown_rule_target(store):
    """Test the foreign key on alert rules."""
    with pytest.raises(StoreError, match="add_rule failed"):
        store.add_rule(999)


def test_pagerduty_missing_key_raises_channel_config_error(notifiers, sample):
    """Test that _deliver raises and send() converts to a failed result."""
    pagerduty = notifiers["pagerduty"]
    pagerduty.default_routing_key = ""

    with pytest.raises(ChannelConfigError, match="missing routing_key"):
        pagerduty._deliver(PagerDutyChannelConfig(), sample, AlertType.OPENED, "down", "critical")

    result = pagerduty.send(PagerDutyChannelConfig(), sample, AlertType.OPENED, "down", "critical")
    assert result.success is False
    assert result.error == "missing routing_key in channel config"


def test_send_rejects_wrong_config_variant(notifiers, sample):
    result = notifiers["email"].send(
        PagerDutyChannelConfig(routing_key="KEY"), sample, AlertType.OPENED, "down", "warning"
    )

    assert result.error == "invalid email channel config"


def test_unsupported_channel(dispatcher):
    with pytest.raises(UnsupportedChannelError, match="unsupported channel type: sms"):
        dispatcher.sender_for("sms")


def test_unsupported_config_format(tmp_path):
    path = tmp_path / "auspex.ini"
    path.write_text("[alerter]\n")

    with pytest.raises(ValueError, match="Unsupported config file format"):
        load_config_file(str(path))


def test_missing_config_file():
    with pytest.raises(FileNotFoundError):
        load_config_file("/nonexistent/auspex.yaml")