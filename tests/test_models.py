"""
Tests for Pydantic models.
"""
import pytest
from datetime import datetime
from pydantic import ValidationError

from auspex.models import (
    AlertChannel,
    AlertState,
    DeliveryResult,
    DeliveryStatus,
    EmailChannelConfig,
    PagerDutyChannelConfig,
    SlackEmailChannelConfig,
    StatusSample,
    Suppression,
    TargetStatus,
    parse_channel_config,
)


def test_status_sample_normalization() -> None:
    """Test status case folding and timestamp parsing."""
    sample = StatusSample(
        target_id=1,
        status="DOWN",
        message=None,
        sampled_at="2025-06-02T14:00:00",
    )

    assert sample.status == TargetStatus.DOWN
    assert sample.message == ""
    assert sample.sampled_at == datetime(2025, 6, 2, 14, 0, 0)


def test_status_sample_invalid_timestamp() -> None:
    """Test that an unparsable timestamp is rejected."""
    with pytest.raises(ValidationError):
        StatusSample(target_id=1, status="up", sampled_at="not-a-date")


def test_parse_pagerduty_config() -> None:
    config = parse_channel_config("pagerduty", {"routing_key": "ABCDEFGHIJ"})

    assert isinstance(config, PagerDutyChannelConfig)
    assert config.recipient() == "PagerDuty:ABCDEFGH..."


def test_parse_mail_config_with_from_alias() -> None:
    config = parse_channel_config("slack_email", {"email": "noc@team.slack.com", "from": "bot@example.com"})

    assert isinstance(config, SlackEmailChannelConfig)
    assert config.sender == "bot@example.com"
    assert config.recipient() == "noc@team.slack.com"


def test_parse_config_ignores_stored_kind_key() -> None:
    """Test that a stray kind key does not break the variant."""
    config = parse_channel_config("email", {"kind": "pagerduty", "to": "ops@example.com"})

    assert isinstance(config, EmailChannelConfig)
    assert config.to == "ops@example.com"


def test_parse_malformed_config_gives_empty_variant() -> None:
    """Test that bad configs load as empty variants."""
    assert parse_channel_config("email", {"to": ["not", "a", "string"]}).to == ""
    assert parse_channel_config("email", "garbage").to == ""


def test_parse_unknown_kind() -> None:
    assert parse_channel_config("sms", {"number": "1"}) is None


def test_alert_channel_recipient() -> None:
    """Test recipient summaries for each kind."""
    assert AlertChannel.from_raw(1, "a", "email", {"to": "ops@example.com"}).recipient() == "ops@example.com"
    assert AlertChannel.from_raw(2, "b", "pagerduty", {}).recipient() == "unknown"
    assert AlertChannel.from_raw(3, "c", "sms", {"number": "1"}).recipient() == "unknown"


def test_alert_state_activation() -> None:
    """Test that the active flag follows the alert reference."""
    state = AlertState(target_id=1, last_status="up", last_checked=datetime(2025, 6, 2))

    state.activate(9)
    assert state.alert_active is True
    assert state.active_alert_id == 9

    state.clear()
    assert state.alert_active is False
    assert state.active_alert_id is None


def test_alert_state_rejects_inconsistent_flags() -> None:
    with pytest.raises(ValidationError, match="alert_active"):
        AlertState(target_id=1, last_status="up", last_checked=datetime(2025, 6, 2), alert_active=True)


def test_alert_state_record_transition() -> None:
    state = AlertState(target_id=1, last_status="up", last_checked=datetime(2025, 6, 2))
    at = datetime(2025, 6, 2, 14, 0)

    state.record_transition(TargetStatus.DOWN, at)

    assert state.state_change_count == 1
    assert state.last_state_change == at
    assert state.last_checked == at
    assert state.last_status == TargetStatus.DOWN


def test_suppression_days_validation() -> None:
    with pytest.raises(ValidationError, match="days_of_week"):
        Suppression(
            id=1,
            start_time=datetime(2025, 6, 2, 9),
            end_time=datetime(2025, 6, 2, 17),
            recurrence="weekly",
            days_of_week=[7],
        )


def test_delivery_result_status() -> None:
    assert DeliveryResult.ok().status == DeliveryStatus.SENT
    failed = DeliveryResult.failed("PagerDuty returned status 500")
    assert failed.status == DeliveryStatus.FAILED
    assert failed.error == "PagerDuty returned status 500"
