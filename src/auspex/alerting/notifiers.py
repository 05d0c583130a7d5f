"""
Notification channels for Auspex alerts.

Supports PagerDuty (Events API v2), Slack through its email relay, and
plain email. Each channel translates an alert event into its own wire
format; new kinds only need a NotificationChannel subclass registered in
build_notifiers().
"""
import smtplib
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Type

import requests

from ..constants import (
    DEDUP_KEY_PREFIX,
    DEFAULT_DASHBOARD_URL,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_SMTP_FROM,
    DEFAULT_SMTP_TIMEOUT_SECONDS,
    PAGERDUTY_ACCEPTED_STATUS,
    PAGERDUTY_EVENTS_URL,
    PAGERDUTY_SOURCE,
)
from ..exceptions import ChannelConfigError, DeliveryError, NotificationError
from ..logging_context import get_logger
from ..models import (
    AlertType,
    ChannelKind,
    DeliveryResult,
    EmailChannelConfig,
    PagerDutyChannelConfig,
    SlackEmailChannelConfig,
    StatusSample,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]

STATUS_EMOJI = {
    AlertType.OPENED: "\U0001F534",  # red circle
    AlertType.RECOVERED: "✅",  # check mark
}

# Anything else maps to "error" on the PagerDuty scale
PAGERDUTY_SEVERITIES = {
    "info": "info",
    "warning": "warning",
    "critical": "critical",
}


def pagerduty_severity(severity: str) -> str:
    """Map a rule severity onto PagerDuty's info/warning/error/critical scale."""
    return PAGERDUTY_SEVERITIES.get((severity or "").lower(), "error")


def pagerduty_action(alert_type: AlertType) -> str:
    return "resolve" if alert_type == AlertType.RECOVERED else "trigger"


def dedup_key(target_id: int) -> str:
    """Deterministic per-target key so PagerDuty coalesces repeated events."""
    return f"{DEDUP_KEY_PREFIX}{target_id}"


def alert_subject(severity: str, sample: StatusSample) -> str:
    return f"[{(severity or '').upper()}] Auspex Alert: {sample.target_name}"


def _display_time(moment: datetime) -> str:
    return moment.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")


class NotificationChannel(ABC):
    """
    Abstract base class for notification channels.

    Subclasses implement _deliver(), raising ChannelConfigError for missing
    configuration and DeliveryError for transport failures. send() turns
    those into a failed DeliveryResult whose error text is kept verbatim
    for the audit trail.
    """

    kind: str = ""
    config_type: Type[Any] = object

    def send(
        self,
        config: Any,
        sample: StatusSample,
        alert_type: AlertType,
        message: str,
        severity: str
    ) -> DeliveryResult:
        """
        Send one alert event through this channel.

        Args:
            config: Typed channel config for this kind
            sample: Status sample that triggered the event
            alert_type: opened or recovered
            message: Rendered alert message
            severity: Rule severity

        Returns:
            DeliveryResult with the outcome
        """
        try:
            if not isinstance(config, self.config_type):
                raise ChannelConfigError(f"invalid {self.kind} channel config")
            self._deliver(config, sample, alert_type, message, severity)
        except NotificationError as e:
            return DeliveryResult.failed(str(e))
        return DeliveryResult.ok()

    @abstractmethod
    def _deliver(
        self,
        config: Any,
        sample: StatusSample,
        alert_type: AlertType,
        message: str,
        severity: str
    ) -> None:
        pass


class PagerDutyNotifier(NotificationChannel):
    """
    PagerDuty Events API v2 notifier.

    Opening alerts trigger an incident and recoveries resolve it; both use
    the same per-target dedup key.
    """

    kind = ChannelKind.PAGERDUTY.value
    config_type = PagerDutyChannelConfig

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        events_url: str = PAGERDUTY_EVENTS_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        default_routing_key: str = "",
        source: str = PAGERDUTY_SOURCE,
        clock: Clock = datetime.now
    ):
        """
        Initialize PagerDuty notifier.

        Args:
            session: requests session (a shared one is created if omitted)
            events_url: Events API enqueue endpoint
            timeout: Request timeout in seconds
            default_routing_key: Used when a channel has no routing_key
            source: Value of payload.source
            clock: Time source for the event timestamp
        """
        self.session = session or requests.Session()
        self.events_url = events_url
        self.timeout = timeout
        self.default_routing_key = default_routing_key
        self.source = source
        self.clock = clock

    def build_payload(
        self,
        routing_key: str,
        sample: StatusSample,
        alert_type: AlertType,
        message: str,
        severity: str
    ) -> Dict[str, Any]:
        """Build the Events API v2 document."""
        return {
            "routing_key": routing_key,
            "event_action": pagerduty_action(alert_type),
            "dedup_key": dedup_key(sample.target_id),
            "payload": {
                "summary": message,
                "severity": pagerduty_severity(severity),
                "source": self.source,
                "timestamp": self.clock().astimezone().isoformat(timespec="seconds"),
                "custom_details": {
                    "target_id": sample.target_id,
                    "target_name": sample.target_name,
                    "host": sample.host,
                    "status": sample.status.value,
                    "latency_ms": sample.latency_ms,
                    "message": sample.message,
                },
            },
        }

    def _deliver(self, config, sample, alert_type, message, severity) -> None:
        routing_key = config.routing_key or self.default_routing_key
        if not routing_key:
            raise ChannelConfigError("missing routing_key in channel config")

        payload = self.build_payload(routing_key, sample, alert_type, message, severity)

        try:
            response = self.session.post(self.events_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise DeliveryError(f"failed to send to PagerDuty: {e}") from e

        if response.status_code != PAGERDUTY_ACCEPTED_STATUS:
            raise DeliveryError(f"PagerDuty returned status {response.status_code}")

        logger.debug(f"PagerDuty {payload['event_action']} sent for target {sample.target_id}")


class SMTPMailer:
    """
    Mail submission over an authenticated SMTP session.

    Messages carry only From, To and Subject headers followed by a blank
    line and a plain-text body.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        timeout: float = DEFAULT_SMTP_TIMEOUT_SECONDS,
        smtp_class: Type[smtplib.SMTP] = smtplib.SMTP
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout
        self.smtp_class = smtp_class

    @property
    def configured(self) -> bool:
        return bool(self.host and self.username and self.password)

    @staticmethod
    def build_message(sender: str, recipient: str, subject: str, body: str) -> str:
        body = body.replace("\r\n", "\n").replace("\n", "\r\n")
        return f"From: {sender}\r\nTo: {recipient}\r\nSubject: {subject}\r\n\r\n{body}"

    def send(self, sender: str, recipient: str, subject: str, body: str) -> None:
        """
        Submit one message.

        Raises:
            DeliveryError: If SMTP is not configured or submission fails
        """
        if not self.configured:
            raise DeliveryError("SMTP not configured (check AUSPEX_SMTP_* environment variables)")

        message = self.build_message(sender, recipient, subject, body)

        try:
            with self.smtp_class(self.host, self.port, timeout=self.timeout) as server:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls()
                    server.ehlo()
                server.login(self.username, self.password)
                server.sendmail(sender, [recipient], message.encode("utf-8"))
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"failed to send email: {e}") from e

        logger.debug(f"Mail submitted to {recipient} via {self.host}:{self.port}")


class _MailNotifier(NotificationChannel):
    """Shared plumbing for channels delivered through the mail relay."""

    def __init__(
        self,
        mailer: SMTPMailer,
        default_sender: str = DEFAULT_SMTP_FROM,
        clock: Clock = datetime.now
    ):
        self.mailer = mailer
        self.default_sender = default_sender
        self.clock = clock

    def _sender(self, config) -> str:
        return config.sender or self.default_sender


class SlackEmailNotifier(_MailNotifier):
    """Posts to a Slack channel through the channel's email address."""

    kind = ChannelKind.SLACK_EMAIL.value
    config_type = SlackEmailChannelConfig

    def format_body(self, sample: StatusSample, alert_type: AlertType, message: str) -> str:
        return (
            f"{STATUS_EMOJI[alert_type]} {message}\n"
            f"\n"
            f"Target: {sample.target_name}\n"
            f"Host: {sample.host}\n"
            f"Status: {sample.status.value.upper()}\n"
            f"Time: {_display_time(self.clock())}\n"
            f"\n"
            f"{sample.message}\n"
            f"\n"
            f"---\n"
            f"Auspex SNMP Monitor\n"
        )

    def _deliver(self, config, sample, alert_type, message, severity) -> None:
        if not config.email:
            raise ChannelConfigError("missing email in channel config")

        self.mailer.send(
            self._sender(config),
            config.email,
            alert_subject(severity, sample),
            self.format_body(sample, alert_type, message),
        )


class EmailNotifier(_MailNotifier):
    """Direct email with latency details and a link to the target page."""

    kind = ChannelKind.EMAIL.value
    config_type = EmailChannelConfig

    def __init__(
        self,
        mailer: SMTPMailer,
        default_sender: str = DEFAULT_SMTP_FROM,
        dashboard_url: str = DEFAULT_DASHBOARD_URL,
        clock: Clock = datetime.now
    ):
        super().__init__(mailer, default_sender, clock)
        self.dashboard_url = dashboard_url.rstrip("/")

    def target_link(self, target_id: int) -> str:
        return f"{self.dashboard_url}/target.html?id={target_id}"

    def format_body(self, sample: StatusSample, alert_type: AlertType, message: str) -> str:
        return (
            f"{STATUS_EMOJI[alert_type]} {message}\n"
            f"\n"
            f"Target: {sample.target_name}\n"
            f"Host: {sample.host}\n"
            f"Status: {sample.status.value.upper()}\n"
            f"Latency: {sample.latency_ms}ms\n"
            f"Time: {_display_time(self.clock())}\n"
            f"\n"
            f"Details:\n"
            f"{sample.message}\n"
            f"\n"
            f"---\n"
            f"Auspex SNMP Monitor\n"
            f"View Target: {self.target_link(sample.target_id)}\n"
        )

    def _deliver(self, config, sample, alert_type, message, severity) -> None:
        if not config.to:
            raise ChannelConfigError("missing to address in channel config")

        self.mailer.send(
            self._sender(config),
            config.to,
            alert_subject(severity, sample),
            self.format_body(sample, alert_type, message),
        )


def build_notifiers(
    config,
    session: Optional[requests.Session] = None,
    mailer: Optional[SMTPMailer] = None,
    clock: Clock = datetime.now
) -> Dict[str, NotificationChannel]:
    """
    Create one notifier per supported channel kind.

    Args:
        config: AlerterConfig with SMTP and PagerDuty settings
        session: Optional requests session for PagerDuty
        mailer: Optional mail transport (built from config if omitted)
        clock: Time source used in rendered messages

    Returns:
        Mapping of channel kind to notifier
    """
    if mailer is None:
        mailer = SMTPMailer(
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_user,
            password=config.smtp_password,
            timeout=config.smtp_timeout_seconds,
        )
        if not mailer.configured:
            logger.warning("SMTP is not configured; email channels will fail")

    notifiers: Dict[str, NotificationChannel] = {
        ChannelKind.PAGERDUTY.value: PagerDutyNotifier(
            session=session,
            events_url=config.pagerduty_events_url,
            timeout=config.http_timeout_seconds,
            default_routing_key=config.pagerduty_default_key,
            clock=clock,
        ),
        ChannelKind.SLACK_EMAIL.value: SlackEmailNotifier(
            mailer, default_sender=config.smtp_from, clock=clock
        ),
        ChannelKind.EMAIL.value: EmailNotifier(
            mailer,
            default_sender=config.smtp_from,
            dashboard_url=config.dashboard_url,
            clock=clock,
        ),
    }
    logger.info(f"Registered notifiers: {', '.join(sorted(notifiers))}")
    return notifiers
