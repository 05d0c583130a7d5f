"""
Alert correlation and notification for Auspex.

This package turns target status samples into alert lifecycle events and
delivers them through PagerDuty, Slack (email relay) and email channels.
"""

from .auditor import DeliveryAuditor
from .correlation import CorrelationEngine, CycleSummary
from .dispatcher import NotificationDispatcher
from .notifiers import (
    NotificationChannel,
    PagerDutyNotifier,
    SMTPMailer,
    SlackEmailNotifier,
    EmailNotifier,
    build_notifiers,
)
from .suppression import SuppressionEvaluator, suppression_matches

__all__ = [
    "CorrelationEngine",
    "CycleSummary",
    "NotificationDispatcher",
    "DeliveryAuditor",
    "NotificationChannel",
    "PagerDutyNotifier",
    "SMTPMailer",
    "SlackEmailNotifier",
    "EmailNotifier",
    "build_notifiers",
    "SuppressionEvaluator",
    "suppression_matches",
]
