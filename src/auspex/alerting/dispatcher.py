"""
Fan-out of alert events to the channels bound to a rule.
"""
from datetime import datetime
from typing import Callable, Dict, List

from ..exceptions import StoreError, UnsupportedChannelError
from ..logging_context import LoggingContext, get_logger
from ..models import (
    AlertChannel,
    AlertRule,
    AlertType,
    DeliveryRecord,
    DeliveryResult,
    StatusSample,
)
from .auditor import DeliveryAuditor
from .notifiers import NotificationChannel

logger = get_logger(__name__)


class NotificationDispatcher:
    """
    Sends one alert event to every enabled channel of a rule.

    Channels are independent: a failing channel is audited as failed and
    the remaining channels are still attempted, in the rule's order.

    Example:
        >>> dispatcher = NotificationDispatcher(store, build_notifiers(config), auditor)
        >>> records = dispatcher.dispatch(rule, sample, AlertType.OPENED, message, alert.id)
    """

    def __init__(
        self,
        store,
        channels: Dict[str, NotificationChannel],
        auditor: DeliveryAuditor,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize the dispatcher.

        Args:
            store: AlertStore used to load channels and count notifications
            channels: Mapping of channel kind to sender
            auditor: Records every delivery attempt
            clock: Time source for the notification timestamp
        """
        self.store = store
        self.channels = dict(channels)
        self.auditor = auditor
        self.clock = clock

    def dispatch(
        self,
        rule: AlertRule,
        sample: StatusSample,
        alert_type: AlertType,
        message: str,
        alert_id: int
    ) -> List[DeliveryRecord]:
        """
        Deliver an alert event through the rule's channels.

        Args:
            rule: Rule whose channel list is used
            sample: Sample that triggered the event
            alert_type: opened or recovered
            message: Rendered alert message
            alert_id: Alert the deliveries are recorded against

        Returns:
            One delivery record per attempted channel
        """
        if not rule.channels:
            return []

        with LoggingContext(rule_id=rule.id, target_id=rule.target_id, alert_id=alert_id):
            try:
                channels = self.store.load_channels(rule.channels)
            except StoreError as e:
                logger.error(f"Failed to load channels for rule {rule.id}: {e}")
                return []

            records = []
            for channel in channels:
                if not channel.enabled:
                    logger.debug(f"Skipping disabled channel {channel.id}")
                    continue

                with LoggingContext(channel_id=channel.id):
                    result = self._send(channel, rule, sample, alert_type, message)
                    if result.success:
                        logger.info(f"Sent {alert_type.value} notification via {channel.kind}")
                    else:
                        logger.error(
                            f"Failed to send notification via {channel.kind}: {result.error}"
                        )
                    records.append(self.auditor.record(alert_id, channel, result))

            try:
                self.store.record_notification(alert_id, self.clock())
            except StoreError as e:
                logger.error(f"Failed to update notification count for alert {alert_id}: {e}")

            return records

    def sender_for(self, kind: str) -> NotificationChannel:
        """
        Look up the sender for a channel kind.

        Raises:
            UnsupportedChannelError: If no sender handles ``kind``
        """
        sender = self.channels.get(kind)
        if sender is None:
            raise UnsupportedChannelError(f"unsupported channel type: {kind}")
        return sender

    def _send(
        self,
        channel: AlertChannel,
        rule: AlertRule,
        sample: StatusSample,
        alert_type: AlertType,
        message: str
    ) -> DeliveryResult:
        try:
            sender = self.sender_for(channel.kind)
            return sender.send(channel.config, sample, alert_type, message, rule.severity)
        except UnsupportedChannelError as e:
            return DeliveryResult.failed(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in {channel.kind} sender")
            return DeliveryResult.failed(str(e))
