"""
Status correlation engine.

Turns the stream of per-target status samples into alert lifecycle events.
Each target carries a small state record (last status, active alert); an
alert is opened on an up-to-down transition and recovered on the way back,
so repeated samples of the same status never produce duplicate alerts.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from ..constants import DEFAULT_DEDUP_WINDOW_MINUTES, RULE_TYPE_STATUS_CHANGE
from ..exceptions import StoreError
from ..logging_context import LoggingContext, get_logger
from ..models import (
    Alert,
    AlertRule,
    AlertState,
    AlertType,
    StatusSample,
    TargetStatus,
)
from .dispatcher import NotificationDispatcher
from .suppression import SuppressionEvaluator

logger = get_logger(__name__)


def down_message(sample: StatusSample) -> str:
    return f"Target {sample.target_name} ({sample.host}) is DOWN - {sample.message}"


def up_message(sample: StatusSample) -> str:
    return (
        f"Target {sample.target_name} ({sample.host}) is back UP "
        f"(latency: {sample.latency_ms}ms)"
    )


@dataclass
class CycleSummary:
    """
    Outcome of one evaluation cycle.

    Attributes:
        rules_processed: Rules evaluated without a store error
        alerts_opened: Opened alerts created
        alerts_recovered: Recovery notices created
        suppressed: Transitions silenced by a maintenance window
        errors: Rules abandoned after a store error
    """
    rules_processed: int = 0
    alerts_opened: int = 0
    alerts_recovered: int = 0
    suppressed: int = 0
    errors: int = 0

    def count(self, alerts: List[Alert]) -> None:
        for alert in alerts:
            if alert.alert_type == AlertType.OPENED:
                self.alerts_opened += 1
            else:
                self.alerts_recovered += 1


class CorrelationEngine:
    """
    Evaluates every enabled rule against the latest status of its target.

    State is persisted before notifications go out.

    Example:
        >>> engine = CorrelationEngine(store, dispatcher, SuppressionEvaluator(store))
        >>> summary = engine.run_cycle()
        >>> summary.alerts_opened
        0
    """

    def __init__(
        self,
        store,
        dispatcher: NotificationDispatcher,
        suppression: SuppressionEvaluator,
        clock: Callable[[], datetime] = datetime.now,
        dedup_window_minutes: int = DEFAULT_DEDUP_WINDOW_MINUTES
    ):
        """
        Initialize the engine.

        Args:
            store: AlertStore with rules, samples, state and history
            dispatcher: Sends alert events to channels
            suppression: Maintenance window evaluator
            clock: Time source for state and alert timestamps
            dedup_window_minutes: Reported policy value; deduplication itself
                is driven by the per-target state
        """
        self.store = store
        self.dispatcher = dispatcher
        self.suppression = suppression
        self.clock = clock
        self.dedup_window_minutes = dedup_window_minutes

    def run_cycle(self) -> CycleSummary:
        """
        Run one evaluation pass over all enabled rules.

        A store error while processing a rule abandons that rule only; the
        remaining rules are still evaluated.
        """
        summary = CycleSummary()
        cycle_id = uuid.uuid4().hex[:8]

        with LoggingContext(cycle_id=cycle_id):
            try:
                rules = self.store.load_enabled_rules()
            except StoreError as e:
                logger.error(f"Failed to load alert rules: {e}")
                summary.errors += 1
                return summary

            logger.debug(f"Evaluating {len(rules)} alert rule(s)")

            for rule in rules:
                with LoggingContext(rule_id=rule.id, target_id=rule.target_id):
                    try:
                        alerts = self.process_rule(rule, summary)
                    except StoreError as e:
                        logger.error(f"Error processing rule {rule.id}: {e}")
                        summary.errors += 1
                        continue

                summary.rules_processed += 1
                summary.count(alerts)

        if summary.alerts_opened or summary.alerts_recovered or summary.errors:
            logger.info(
                f"Cycle {cycle_id}: {summary.rules_processed} rule(s), "
                f"{summary.alerts_opened} opened, {summary.alerts_recovered} recovered, "
                f"{summary.suppressed} suppressed, {summary.errors} error(s)"
            )
        return summary

    def process_rule(
        self,
        rule: AlertRule,
        summary: Optional[CycleSummary] = None
    ) -> List[Alert]:
        """
        Evaluate one rule against the latest sample of its target.

        Args:
            rule: Enabled rule to evaluate
            summary: Optional cycle summary updated with suppressed transitions

        Returns:
            Alerts dispatched for this rule

        Raises:
            StoreError: If reading or writing state or history fails
        """
        now = self.clock()

        sample = self.store.latest_status(rule.target_id)
        if sample is None:
            logger.debug(f"No status yet for target {rule.target_id}")
            return []

        state = self.store.get_state(rule.target_id)
        if state is None:
            state = AlertState(
                target_id=rule.target_id,
                last_status=sample.status,
                last_checked=now,
            )
            self.store.save_state(state)
            logger.debug(f"Baseline state for target {rule.target_id}: {sample.status.value}")
            return []

        if state.last_status == sample.status:
            state.last_checked = now
            self.store.save_state(state)
            return []

        previous = state.last_status
        state.record_transition(sample.status, now)
        logger.info(
            f"Target {rule.target_id} changed {previous.value} -> {sample.status.value}"
        )

        if rule.rule_type == RULE_TYPE_STATUS_CHANGE:
            alerts = self._handle_transition(rule, sample, state, now, summary)
        else:
            self.store.save_state(state)
            alerts = []

        for alert in alerts:
            self.dispatcher.dispatch(rule, sample, alert.alert_type, alert.message, alert.id)

        return alerts

    def _handle_transition(
        self,
        rule: AlertRule,
        sample: StatusSample,
        state: AlertState,
        now: datetime,
        summary: Optional[CycleSummary]
    ) -> List[Alert]:
        """Apply the open/recover rules to a changed state and persist it.

        Returns the alerts to dispatch.
        """
        if self.suppression.is_suppressed(rule.target_id, now):
            logger.info(f"Alert suppressed for target {rule.target_id} (maintenance window)")
            if summary is not None:
                summary.suppressed += 1
            self.store.save_state(state)
            return []

        if sample.status == TargetStatus.DOWN and not state.alert_active:
            existing = self.store.open_alert_for_target(rule.target_id)
            if existing is not None:
                logger.warning(
                    f"Adopting open alert #{existing.id} for target {rule.target_id}"
                )
                state.activate(existing.id)
                self.store.save_state(state)
                # written but never sent
                return [existing] if existing.notification_count == 0 else []

            alert = self.store.save_transition(
                state, rule, AlertType.OPENED, down_message(sample), now
            )
            return [alert]

        if sample.status == TargetStatus.UP and state.alert_active:
            alert = self.store.save_transition(
                state, rule, AlertType.RECOVERED, up_message(sample), now
            )
            return [alert] if alert is not None else []

        self.store.save_state(state)
        return []
