"""
Structured logging with correlation fields for the alerting engine.

This module provides context-aware logging that automatically includes
correlation fields (cycle_id, rule_id, target_id, alert_id) in all log
records emitted while a rule or dispatch is being processed.
"""

import contextvars
import logging
import json
from typing import Any, Optional
from datetime import datetime, timezone

CONTEXT_FIELDS = ('cycle_id', 'rule_id', 'target_id', 'alert_id', 'channel_id')

# Context variables for storing processing context
alert_context: contextvars.ContextVar[dict] = contextvars.ContextVar(
    'alert_context', default={}
)


class ContextualLogger(logging.LoggerAdapter):
    """
    Logger adapter that automatically injects correlation fields into log records.

    Usage:
        logger = get_logger(__name__)
        with LoggingContext(rule_id=7, target_id=3):
            logger.info("Processing rule")
    """

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        """Inject context variables into log extra fields."""
        ctx = alert_context.get({})
        extra = dict(kwargs.get('extra') or {})

        for key in CONTEXT_FIELDS:
            value = ctx.get(key)
            if value is not None:
                extra.setdefault(key, value)

        kwargs['extra'] = extra
        return msg, kwargs


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs log records as JSON objects with consistent fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def get_logger(name: str) -> ContextualLogger:
    """
    Get a contextual logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        ContextualLogger instance
    """
    return ContextualLogger(logging.getLogger(name), {})


def set_context(**kwargs: Any) -> contextvars.Token:
    """
    Set processing context for correlation.

    Args:
        **kwargs: Context values (rule_id, target_id, alert_id, etc.)

    Returns:
        Token to reset context later
    """
    current = alert_context.get({}).copy()
    current.update(kwargs)
    return alert_context.set(current)


def get_context() -> dict:
    """Get current processing context."""
    return alert_context.get({}).copy()


def clear_context() -> None:
    """Clear processing context."""
    alert_context.set({})


class LoggingContext:
    """
    Context manager for setting logging context.

    Usage:
        with LoggingContext(rule_id=7, target_id=3):
            logger.info("Processing")  # Includes rule_id and target_id
    """

    def __init__(self, **kwargs: Any):
        self.kwargs = kwargs
        self.token: Optional[contextvars.Token] = None

    def __enter__(self):
        self.token = set_context(**self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token:
            alert_context.reset(self.token)
        return False
