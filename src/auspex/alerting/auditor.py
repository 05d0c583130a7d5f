"""
Delivery audit trail.

Every channel attempt, successful or not, is appended to alert_deliveries
so operators can see who was told what, and when.
"""
from datetime import datetime
from typing import Callable

from ..exceptions import StoreError
from ..logging_context import get_logger
from ..models import AlertChannel, DeliveryRecord, DeliveryResult

logger = get_logger(__name__)


class DeliveryAuditor:
    """
    Records the outcome of each delivery attempt.

    Recording is best effort: a store failure is logged and the record is
    returned without an id, so dispatching to the remaining channels goes on.
    """

    def __init__(self, store, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    def record(
        self,
        alert_id: int,
        channel: AlertChannel,
        result: DeliveryResult
    ) -> DeliveryRecord:
        """
        Persist one delivery attempt.

        Args:
            alert_id: Alert the attempt belongs to
            channel: Channel the attempt went through
            result: Outcome reported by the sender

        Returns:
            The record, with its id when it was stored
        """
        record = DeliveryRecord(
            alert_id=alert_id,
            channel_id=channel.id,
            channel_type=channel.kind,
            recipient=channel.recipient(),
            status=result.status,
            error_message=result.error,
            delivered_at=self.clock(),
        )

        try:
            return self.store.record_delivery(record)
        except StoreError as e:
            logger.error(
                f"Failed to record delivery for alert {alert_id} "
                f"on channel {channel.id}: {e}"
            )
            return record
