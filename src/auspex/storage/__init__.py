"""
Storage and persistence for Auspex.

Provides database persistence for rules, channels, alert state, alert
history, maintenance windows and delivery records.
"""

from .alert_store import AlertStore

__all__ = ["AlertStore"]
