"""
Custom exception types for Auspex.

Provides specific exception classes for better error handling and debugging.
"""


class AuspexError(Exception):
    """Base exception for all Auspex errors."""
    pass


# Storage errors
class StoreError(AuspexError):
    """Base exception for persistent store errors."""
    pass


class StoreUnavailableError(StoreError):
    """The persistent store could not be reached."""
    pass


# Notification errors
class NotificationError(AuspexError):
    """Base exception for notification channel errors."""
    pass


class ChannelConfigError(NotificationError):
    """Channel configuration is missing a required key."""
    pass


class DeliveryError(NotificationError):
    """Transport failed or the remote service rejected the notification."""
    pass


class UnsupportedChannelError(NotificationError):
    """No sender is registered for the channel kind."""
    pass


# Configuration errors
class ConfigurationError(AuspexError):
    """Base exception for configuration errors."""
    pass


class InvalidConfigError(ConfigurationError, ValueError):
    """Invalid configuration."""
    pass


__all__ = [
    "AuspexError",
    "StoreError",
    "StoreUnavailableError",
    "NotificationError",
    "ChannelConfigError",
    "DeliveryError",
    "UnsupportedChannelError",
    "ConfigurationError",
    "InvalidConfigError",
]
