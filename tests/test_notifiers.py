"""
Tests for notification channels.
"""
import smtplib
from datetime import datetime

import pytest
import requests

from auspex.alerting.notifiers import (
    EmailNotifier,
    PagerDutyNotifier,
    SMTPMailer,
    SlackEmailNotifier,
    alert_subject,
    build_notifiers,
    dedup_key,
    pagerduty_severity,
)
from auspex.exceptions import DeliveryError
from auspex.models import (
    AlertType,
    EmailChannelConfig,
    PagerDutyChannelConfig,
    SlackEmailChannelConfig,
    StatusSample,
)


@pytest.fixture
def down_sample() -> StatusSample:
    return StatusSample(
        target_id=7,
        target_name="core-sw-01",
        host="10.0.0.1",
        status="down",
        latency_ms=0,
        message="timeout",
        sampled_at=datetime(2025, 6, 2, 14, 0, 0),
    )


@pytest.fixture
def up_sample(down_sample) -> StatusSample:
    return StatusSample.model_validate(
        {**down_sample.model_dump(), "status": "up", "latency_ms": 12, "message": "ok"}
    )


class TestPagerDutyNotifier:
    """Tests for the PagerDuty Events API channel."""

    def test_trigger_payload(self, session, clock, down_sample):
        """Test the document sent for an opened alert."""
        notifier = PagerDutyNotifier(session=session, clock=clock, timeout=5)
        config = PagerDutyChannelConfig(routing_key="R0UT1NGKEY")

        result = notifier.send(config, down_sample, AlertType.OPENED, "Target down", "critical")

        assert result.success is True
        [call] = session.calls
        assert call["url"] == "https://events.pagerduty.com/v2/enqueue"
        assert call["timeout"] == 5
        body = call["json"]
        assert body["routing_key"] == "R0UT1NGKEY"
        assert body["event_action"] == "trigger"
        assert body["dedup_key"] == "auspex-target-7"
        assert body["payload"]["summary"] == "Target down"
        assert body["payload"]["severity"] == "critical"
        assert body["payload"]["source"] == "auspex-monitor"
        assert body["payload"]["timestamp"].startswith("2025-06-02T14:00:00")
        assert body["payload"]["custom_details"] == {
            "target_id": 7,
            "target_name": "core-sw-01",
            "host": "10.0.0.1",
            "status": "down",
            "latency_ms": 0,
            "message": "timeout",
        }

    def test_recovery_resolves(self, session, clock, up_sample):
        """Test that recovery events resolve the incident."""
        notifier = PagerDutyNotifier(session=session, clock=clock)

        notifier.send(PagerDutyChannelConfig(routing_key="K"), up_sample, AlertType.RECOVERED, "up", "warning")

        assert session.calls[0]["json"]["event_action"] == "resolve"
        assert session.calls[0]["json"]["dedup_key"] == "auspex-target-7"

    def test_non_accepted_status_fails(self, session, clock, down_sample):
        """Test that anything but 202 is a failure."""
        session.status_code = 400
        notifier = PagerDutyNotifier(session=session, clock=clock)

        result = notifier.send(PagerDutyChannelConfig(routing_key="K"), down_sample, AlertType.OPENED, "m", "info")

        assert result.success is False
        assert result.error == "PagerDuty returned status 400"

    def test_transport_error_fails(self, session, clock, down_sample):
        """Test that a timeout is reported as an ordinary failure."""
        session.error = requests.Timeout("read timed out")
        notifier = PagerDutyNotifier(session=session, clock=clock)

        result = notifier.send(PagerDutyChannelConfig(routing_key="K"), down_sample, AlertType.OPENED, "m", "info")

        assert result.success is False
        assert result.error == "failed to send to PagerDuty: read timed out"

    def test_missing_routing_key(self, session, clock, down_sample):
        """Test that a channel without a key fails without a request."""
        notifier = PagerDutyNotifier(session=session, clock=clock)

        result = notifier.send(PagerDutyChannelConfig(), down_sample, AlertType.OPENED, "m", "info")

        assert result.error == "missing routing_key in channel config"
        assert session.calls == []

    def test_default_routing_key(self, session, clock, down_sample):
        """Test the configured default key when the channel has none."""
        notifier = PagerDutyNotifier(session=session, clock=clock, default_routing_key="DEFAULTKEY")

        result = notifier.send(PagerDutyChannelConfig(), down_sample, AlertType.OPENED, "m", "info")

        assert result.success is True
        assert session.calls[0]["json"]["routing_key"] == "DEFAULTKEY"

    def test_wrong_config_variant(self, session, clock, down_sample):
        """Test that a mail config handed to the pager channel fails."""
        notifier = PagerDutyNotifier(session=session, clock=clock)

        result = notifier.send(EmailChannelConfig(to="a@b"), down_sample, AlertType.OPENED, "m", "info")

        assert result.error == "invalid pagerduty channel config"


@pytest.mark.parametrize("severity,expected", [
    ("info", "info"),
    ("warning", "warning"),
    ("critical", "critical"),
    ("CRITICAL", "critical"),
    ("major", "error"),
    ("", "error"),
])
def test_pagerduty_severity(severity, expected):
    """Test mapping onto the PagerDuty severity scale."""
    assert pagerduty_severity(severity) == expected


def test_dedup_key():
    assert dedup_key(42) == "auspex-target-42"


class TestSlackEmailNotifier:
    """Tests for the Slack email relay channel."""

    def test_sends_formatted_message(self, mailer, clock, down_sample):
        """Test subject, sender fallback and body."""
        notifier = SlackEmailNotifier(mailer, default_sender="auspex@example.com", clock=clock)

        result = notifier.send(
            SlackEmailChannelConfig(email="noc@team.slack.com"),
            down_sample,
            AlertType.OPENED,
            "Target core-sw-01 (10.0.0.1) is DOWN - timeout",
            "warning",
        )

        assert result.success is True
        [mail] = mailer.sent
        assert mail["sender"] == "auspex@example.com"
        assert mail["recipient"] == "noc@team.slack.com"
        assert mail["subject"] == "[WARNING] Auspex Alert: core-sw-01"
        assert mail["body"].startswith("\U0001F534 Target core-sw-01 (10.0.0.1) is DOWN - timeout\n")
        assert "Status: DOWN\n" in mail["body"]
        assert "Host: 10.0.0.1\n" in mail["body"]
        assert mail["body"].endswith("---\nAuspex SNMP Monitor\n")

    def test_channel_sender_overrides_default(self, mailer, clock, up_sample):
        """Test the channel's own from address."""
        notifier = SlackEmailNotifier(mailer, default_sender="auspex@example.com", clock=clock)
        config = SlackEmailChannelConfig.model_validate({"email": "noc@team.slack.com", "from": "noc-bot@example.com"})

        notifier.send(config, up_sample, AlertType.RECOVERED, "back up", "info")

        assert mailer.sent[0]["sender"] == "noc-bot@example.com"
        assert mailer.sent[0]["body"].startswith("✅ back up")

    def test_missing_email(self, mailer, clock, down_sample):
        notifier = SlackEmailNotifier(mailer, clock=clock)

        result = notifier.send(SlackEmailChannelConfig(), down_sample, AlertType.OPENED, "m", "info")

        assert result.error == "missing email in channel config"
        assert mailer.sent == []

    def test_mailer_failure(self, mailer, clock, down_sample):
        """Test that transport errors surface verbatim."""
        mailer.error = DeliveryError("failed to send email: connection refused")
        notifier = SlackEmailNotifier(mailer, clock=clock)

        result = notifier.send(SlackEmailChannelConfig(email="x@y"), down_sample, AlertType.OPENED, "m", "info")

        assert result.error == "failed to send email: connection refused"


class TestEmailNotifier:
    """Tests for the direct email channel."""

    def test_body_includes_latency_and_link(self, mailer, clock, up_sample):
        """Test the richer email body."""
        notifier = EmailNotifier(mailer, dashboard_url="http://monitor.example.com/", clock=clock)

        result = notifier.send(
            EmailChannelConfig(to="ops@example.com"), up_sample, AlertType.RECOVERED, "back up", "critical"
        )

        assert result.success is True
        [mail] = mailer.sent
        assert mail["recipient"] == "ops@example.com"
        assert mail["subject"] == "[CRITICAL] Auspex Alert: core-sw-01"
        assert "Latency: 12ms\n" in mail["body"]
        assert "Details:\nok\n" in mail["body"]
        assert mail["body"].endswith("View Target: http://monitor.example.com/target.html?id=7\n")

    def test_missing_to(self, mailer, clock, down_sample):
        notifier = EmailNotifier(mailer, clock=clock)

        result = notifier.send(EmailChannelConfig(), down_sample, AlertType.OPENED, "m", "info")

        assert result.error == "missing to address in channel config"


class FakeSMTP:
    """Stands in for smtplib.SMTP."""

    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.calls = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def ehlo(self):
        self.calls.append("ehlo")

    def has_extn(self, name):
        return name == "starttls"

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user, password))

    def sendmail(self, sender, recipients, message):
        self.calls.append(("sendmail", sender, recipients, message))


class RefusingSMTP(FakeSMTP):
    def login(self, user, password):
        raise smtplib.SMTPAuthenticationError(535, b"bad credentials")


class TestSMTPMailer:
    """Tests for the SMTP transport."""

    def test_not_configured(self):
        """Test the error when credentials are missing."""
        mailer = SMTPMailer("smtp.example.com", 587, "", "", smtp_class=FakeSMTP)

        with pytest.raises(DeliveryError, match=r"SMTP not configured \(check AUSPEX_SMTP_\* environment variables\)"):
            mailer.send("a@b", "c@d", "s", "b")

    def test_send(self):
        """Test the session and message layout."""
        FakeSMTP.instances.clear()
        mailer = SMTPMailer("smtp.example.com", 587, "alerts", "secret", timeout=7, smtp_class=FakeSMTP)

        mailer.send("auspex@example.com", "ops@example.com", "[INFO] Auspex Alert: sw", "line one\nline two")

        [server] = FakeSMTP.instances
        assert (server.host, server.port, server.timeout) == ("smtp.example.com", 587, 7)
        assert server.calls[:4] == ["ehlo", "starttls", "ehlo", ("login", "alerts", "secret")]
        _, sender, recipients, message = server.calls[4]
        assert sender == "auspex@example.com"
        assert recipients == ["ops@example.com"]
        assert message == (
            b"From: auspex@example.com\r\nTo: ops@example.com\r\n"
            b"Subject: [INFO] Auspex Alert: sw\r\n\r\nline one\r\nline two"
        )

    def test_smtp_error_becomes_delivery_error(self):
        mailer = SMTPMailer("smtp.example.com", 587, "alerts", "wrong", smtp_class=RefusingSMTP)

        with pytest.raises(DeliveryError, match="failed to send email"):
            mailer.send("a@b", "c@d", "s", "b")


def test_alert_subject(down_sample):
    assert alert_subject("critical", down_sample) == "[CRITICAL] Auspex Alert: core-sw-01"


def test_build_notifiers(config, session, mailer):
    """Test the factory covers every channel kind."""
    notifiers = build_notifiers(config, session=session, mailer=mailer)

    assert set(notifiers) == {"pagerduty", "slack_email", "email"}
    assert notifiers["pagerduty"].session is session
    assert notifiers["email"].dashboard_url == "http://monitor.example.com"
    assert notifiers["slack_email"].default_sender == "auspex@example.com"


def test_build_notifiers_creates_mailer(config):
    """Test that an SMTP mailer is built from configuration."""
    notifiers = build_notifiers(config)

    mailer = notifiers["email"].mailer
    assert isinstance(mailer, SMTPMailer)
    assert mailer.host == "smtp.gmail.com"
    assert mailer.port == 587
    assert mailer.configured is True
