"""
Data models for the Auspex alerting engine using Pydantic for validation.
"""
import logging
from datetime import datetime
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from dateutil import parser as date_parser

logger = logging.getLogger(__name__)


# Rows read back from the store repeat the same timestamp strings on every
# cycle (state rows, suppression windows), so parsing results are cached.
@lru_cache(maxsize=1024)
def _parse_timestamp_cached(timestamp_str: str) -> Optional[datetime]:
    """
    Parse timestamp string with LRU caching.

    Args:
        timestamp_str: ISO 8601 or other timestamp string format.

    Returns:
        Parsed datetime object or None if parsing fails.
    """
    try:
        return date_parser.parse(timestamp_str)
    except (ValueError, TypeError, OverflowError):
        return None


def naive_local(moment: datetime) -> datetime:
    """Local wall-clock time without tzinfo; naive values are returned as is."""
    if moment.tzinfo is not None:
        return moment.astimezone().replace(tzinfo=None)
    return moment


def parse_timestamp(value: Any) -> Any:
    """Coerce a stored timestamp string into a datetime.

    Values that are not strings are returned unchanged so that pydantic can
    report a proper validation error for them.
    """
    if isinstance(value, str):
        parsed = _parse_timestamp_cached(value)
        if parsed is None:
            raise ValueError(f"Invalid timestamp: {value!r}")
        return parsed
    return value


class TargetStatus(str, Enum):
    """Observed status of a monitored target."""
    UP = "up"
    DOWN = "down"


class AlertType(str, Enum):
    """Alert lifecycle record type."""
    OPENED = "opened"  # Target went down
    RECOVERED = "recovered"  # Target came back up


class ChannelKind(str, Enum):
    """Supported notification channel kinds."""
    PAGERDUTY = "pagerduty"
    SLACK_EMAIL = "slack_email"
    EMAIL = "email"


class Recurrence(str, Enum):
    """Recurrence of a maintenance window."""
    DAILY = "daily"
    WEEKLY = "weekly"


class DeliveryStatus(str, Enum):
    """Outcome of one channel attempt."""
    SENT = "sent"
    FAILED = "failed"


class Target(BaseModel):
    """A monitored device (owned by the collection subsystem)."""
    id: int
    name: str
    host: str


class StatusSample(BaseModel):
    """
    Latest known status of a target, as written by the collector.

    Attributes:
        target_id: Target the sample belongs to
        target_name: Display name of the target
        host: Target host or address
        status: up or down
        latency_ms: Round-trip time of the poll (0 when down)
        message: Collector message (error text or device description)
        sampled_at: When the poll completed
    """
    target_id: int
    target_name: str = ""
    host: str = ""
    status: TargetStatus
    latency_ms: int = 0
    message: str = ""
    sampled_at: datetime

    @field_validator('status', mode='before')
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        """Accept status strings in any case."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator('sampled_at', mode='before')
    @classmethod
    def parse_sampled_at(cls, v: Any) -> Any:
        return parse_timestamp(v)

    @field_validator('message', mode='before')
    @classmethod
    def default_message(cls, v: Any) -> Any:
        return "" if v is None else v


class AlertRule(BaseModel):
    """
    Binding of a target to alert policy.

    Attributes:
        id: Rule identifier
        target_id: Target the rule watches
        name: Human readable rule name
        rule_type: Only "status_change" rules raise alerts
        severity: Severity copied onto created alerts
        enabled: Disabled rules are never loaded
        channels: Ordered list of notification channel ids
    """
    id: int
    target_id: int
    name: str = ""
    rule_type: str = "status_change"
    severity: str = "warning"
    enabled: bool = True
    channels: List[int] = Field(default_factory=list)

    @field_validator('channels', mode='before')
    @classmethod
    def default_channels(cls, v: Any) -> Any:
        return [] if v is None else v


class PagerDutyChannelConfig(BaseModel):
    """Paging channel settings."""
    model_config = ConfigDict(extra="ignore")

    kind: Literal["pagerduty"] = "pagerduty"
    routing_key: str = ""

    def recipient(self) -> str:
        """Redacted routing key, so the full secret is never stored."""
        if not self.routing_key:
            return "unknown"
        return f"PagerDuty:{self.routing_key[:8]}..."


class _MailChannelConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    sender: Optional[str] = Field(default=None, alias="from")


class SlackEmailChannelConfig(_MailChannelConfig):
    """Chat channel reached through its email relay address."""
    kind: Literal["slack_email"] = "slack_email"
    email: str = ""

    def recipient(self) -> str:
        return self.email or "unknown"


class EmailChannelConfig(_MailChannelConfig):
    """Direct email channel."""
    kind: Literal["email"] = "email"
    to: str = ""

    def recipient(self) -> str:
        return self.to or "unknown"


ChannelConfig = Union[PagerDutyChannelConfig, SlackEmailChannelConfig, EmailChannelConfig]

CHANNEL_CONFIG_TYPES: Dict[str, Type[BaseModel]] = {
    ChannelKind.PAGERDUTY.value: PagerDutyChannelConfig,
    ChannelKind.SLACK_EMAIL.value: SlackEmailChannelConfig,
    ChannelKind.EMAIL.value: EmailChannelConfig,
}


def parse_channel_config(kind: str, raw: Any) -> Optional[ChannelConfig]:
    """Turn the JSON config column into the typed variant for ``kind``.

    Unknown kinds yield None. A malformed config for a known kind is logged
    and replaced by an empty variant, so sending fails closed on the missing
    keys instead of failing the whole channel load.

    Args:
        kind: Channel kind as stored
        raw: Decoded JSON config (normally a dict)

    Returns:
        Typed channel config, or None for unknown kinds
    """
    config_cls = CHANNEL_CONFIG_TYPES.get(kind)
    if config_cls is None:
        return None

    if not isinstance(raw, dict):
        logger.warning(f"Channel config for kind {kind} is not an object, ignoring it")
        return config_cls()

    data = {k: v for k, v in raw.items() if k != "kind"}
    try:
        return config_cls.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Invalid {kind} channel config: {e.error_count()} error(s), ignoring it")
        return config_cls()


class AlertChannel(BaseModel):
    """
    A configured notification destination.

    Attributes:
        id: Channel identifier
        name: Display name
        kind: Channel kind (see ChannelKind); unknown kinds are kept so the
            dispatcher can record them as failed attempts
        config: Typed, kind-specific settings (None for unknown kinds)
        enabled: Disabled channels are skipped
    """
    id: int
    name: str = ""
    kind: str
    config: Optional[ChannelConfig] = None
    enabled: bool = True

    @classmethod
    def from_raw(
        cls,
        id: int,
        name: str,
        kind: str,
        raw_config: Any,
        enabled: bool = True
    ) -> 'AlertChannel':
        """Build a channel from stored columns, parsing the config variant."""
        return cls(
            id=id,
            name=name,
            kind=kind,
            config=parse_channel_config(kind, raw_config),
            enabled=enabled,
        )

    def recipient(self) -> str:
        """Recipient summary for the delivery audit trail."""
        if self.config is None:
            return "unknown"
        return self.config.recipient()


class AlertState(BaseModel):
    """
    Per-target correlation memory.

    alert_active is true if and only if active_alert_id is set; use
    activate() and clear() to change both together.
    """
    target_id: int
    last_status: TargetStatus
    last_checked: datetime
    alert_active: bool = False
    active_alert_id: Optional[int] = None
    state_change_count: int = 0
    last_state_change: Optional[datetime] = None

    @field_validator('last_checked', 'last_state_change', mode='before')
    @classmethod
    def parse_times(cls, v: Any) -> Any:
        return parse_timestamp(v)

    @model_validator(mode='after')
    def check_active_reference(self) -> 'AlertState':
        if self.alert_active != (self.active_alert_id is not None):
            raise ValueError("alert_active must be set exactly when active_alert_id is set")
        return self

    def activate(self, alert_id: int) -> None:
        self.alert_active = True
        self.active_alert_id = alert_id

    def clear(self) -> None:
        self.alert_active = False
        self.active_alert_id = None

    def record_transition(self, status: TargetStatus, at: datetime) -> None:
        """Count a status change observed at ``at``."""
        self.state_change_count += 1
        self.last_state_change = at
        self.last_status = status
        self.last_checked = at


class Alert(BaseModel):
    """
    One alert lifecycle record.

    Attributes:
        id: Alert identifier
        rule_id: Rule that fired
        target_id: Target concerned
        alert_type: opened or recovered
        severity: Copied from the rule
        message: Rendered human readable message
        fired_at: Creation time
        resolved_at: Resolution time (recovery notices are resolved at once)
        notification_count: Number of dispatch calls for this alert
        last_notification: Time of the last dispatch call
    """
    id: int
    rule_id: int
    target_id: int
    alert_type: AlertType
    severity: str
    message: str
    fired_at: datetime
    resolved_at: Optional[datetime] = None
    notification_count: int = 0
    last_notification: Optional[datetime] = None

    @field_validator('fired_at', 'resolved_at', 'last_notification', mode='before')
    @classmethod
    def parse_times(cls, v: Any) -> Any:
        return parse_timestamp(v)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None


class Suppression(BaseModel):
    """
    A maintenance window.

    Attributes:
        id: Suppression identifier
        name: Display name
        target_id: Scoped target, or None for every target
        start_time: Window start (only the time of day matters when recurring)
        end_time: Window end
        recurrence: None for a one-time window, daily or weekly
        days_of_week: Weekdays for weekly windows, 0 = Sunday ... 6 = Saturday
        enabled: Disabled windows never match
        reason: Free text
    """
    id: int
    name: str = ""
    target_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    recurrence: Optional[Recurrence] = None
    days_of_week: List[int] = Field(default_factory=list)
    enabled: bool = True
    reason: str = ""

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def parse_times(cls, v: Any) -> Any:
        return parse_timestamp(v)

    @field_validator('recurrence', mode='before')
    @classmethod
    def normalize_recurrence(cls, v: Any) -> Any:
        if v is None:
            return None
        if isinstance(v, str):
            v = v.strip().lower()
            if v in ("", "none"):
                return None
        return v

    @field_validator('days_of_week', mode='before')
    @classmethod
    def default_days(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator('days_of_week')
    @classmethod
    def check_days(cls, v: List[int]) -> List[int]:
        for day in v:
            if not 0 <= day <= 6:
                raise ValueError(f"days_of_week entries must be 0-6 (0 = Sunday), got {day}")
        return v


class DeliveryResult(BaseModel):
    """Outcome returned by a channel sender."""
    success: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> 'DeliveryResult':
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> 'DeliveryResult':
        return cls(success=False, error=error)

    @property
    def status(self) -> DeliveryStatus:
        return DeliveryStatus.SENT if self.success else DeliveryStatus.FAILED


class DeliveryRecord(BaseModel):
    """One append-only audit row for a channel attempt."""
    id: Optional[int] = None
    alert_id: int
    channel_id: int
    channel_type: str
    recipient: str
    status: DeliveryStatus
    error_message: Optional[str] = None
    delivered_at: datetime

    @field_validator('delivered_at', mode='before')
    @classmethod
    def parse_delivered_at(cls, v: Any) -> Any:
        return parse_timestamp(v)
