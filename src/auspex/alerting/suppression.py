"""
Maintenance window evaluation.

Decides whether alerting for a target is suppressed at a given moment.
One-time windows compare full timestamps. Recurring windows (daily, weekly)
compare only the time of day, at hour granularity by default. Minute
granularity can be selected with ``suppression_granularity = "minute"``.
A recurring window matches only between its start and end time of day on
the same day; a window whose start is later than its end never matches.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from ..constants import (
    SUPPRESSION_GRANULARITY_HOUR,
    SUPPRESSION_GRANULARITY_MINUTE,
    VALID_SUPPRESSION_GRANULARITIES,
)
from ..exceptions import StoreError
from ..logging_context import get_logger
from ..models import Recurrence, Suppression, naive_local

logger = get_logger(__name__)


def weekday_index(moment: datetime) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday, as stored in days_of_week."""
    return (moment.weekday() + 1) % 7


def _time_of_day(moment: datetime, granularity: str) -> Tuple[int, ...]:
    if granularity == SUPPRESSION_GRANULARITY_MINUTE:
        return (moment.hour, moment.minute)
    return (moment.hour,)


def _within_time_of_day(
    suppression: Suppression,
    moment: datetime,
    granularity: str
) -> bool:
    start = _time_of_day(naive_local(suppression.start_time), granularity)
    end = _time_of_day(naive_local(suppression.end_time), granularity)
    now = _time_of_day(moment, granularity)
    return start <= now <= end


def suppression_matches(
    suppression: Suppression,
    at: datetime,
    granularity: str = SUPPRESSION_GRANULARITY_HOUR
) -> bool:
    """
    Check whether one maintenance window covers a moment.

    Target scoping is not checked here; callers pass windows already scoped
    to the target (or global).

    Args:
        suppression: Window to test
        at: Reference moment
        granularity: "hour" or "minute" for recurring windows

    Returns:
        True if the window is enabled and covers ``at``
    """
    if not suppression.enabled:
        return False

    moment = naive_local(at)

    if suppression.recurrence is None:
        return naive_local(suppression.start_time) <= moment <= naive_local(suppression.end_time)

    if suppression.recurrence == Recurrence.DAILY:
        return _within_time_of_day(suppression, moment, granularity)

    if suppression.recurrence == Recurrence.WEEKLY:
        return (
            weekday_index(moment) in suppression.days_of_week
            and _within_time_of_day(suppression, moment, granularity)
        )

    return False


class SuppressionEvaluator:
    """
    Answers "is this target in a maintenance window right now?".

    Example:
        >>> evaluator = SuppressionEvaluator(store)
        >>> evaluator.is_suppressed(target_id=3, at=datetime.now())
        False
    """

    def __init__(self, store, granularity: str = SUPPRESSION_GRANULARITY_HOUR):
        """
        Initialize the evaluator.

        Args:
            store: AlertStore providing load_suppressions()
            granularity: "hour" or "minute" comparison for recurring windows

        Raises:
            ValueError: If granularity is not supported
        """
        if granularity not in VALID_SUPPRESSION_GRANULARITIES:
            raise ValueError(
                f"granularity must be one of {VALID_SUPPRESSION_GRANULARITIES}, got '{granularity}'"
            )
        self.store = store
        self.granularity = granularity

    def matching_suppressions(self, target_id: int, at: datetime) -> List[Suppression]:
        """All enabled windows scoped to the target or global that cover ``at``."""
        suppressions = self.store.load_suppressions(target_id)
        return [s for s in suppressions if suppression_matches(s, at, self.granularity)]

    def active_suppression(self, target_id: int, at: datetime) -> Optional[Suppression]:
        """First window covering ``at``, or None.

        A store failure is logged and treated as "no window" so that alerts
        are still raised when the suppression table cannot be read.
        """
        try:
            matches = self.matching_suppressions(target_id, at)
        except StoreError as e:
            logger.error(f"Failed to check suppressions for target {target_id}: {e}")
            return None
        return matches[0] if matches else None

    def is_suppressed(self, target_id: int, at: datetime) -> bool:
        return self.active_suppression(target_id, at) is not None
