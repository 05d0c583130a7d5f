"""Configuration management for the Auspex alerting engine.

This module provides configuration loading and validation for the alerter.
Configuration can be loaded from environment variables, YAML/TOML files, or
direct instantiation.

Classes:
    AlerterConfig: Main configuration dataclass with validation.

Functions:
    _get_int_env: Safely extract integer values from environment variables.

Example:
    >>> from auspex.config import AlerterConfig
    >>>
    >>> # Load from environment variables
    >>> config = AlerterConfig.from_env()
    >>>
    >>> # Load from file with env overrides
    >>> config = AlerterConfig.from_file("auspex.yaml")
    >>>
    >>> # Recommended: automatic loading with fallback
    >>> config = AlerterConfig.load()
    >>> config.validate()
"""
import os
import logging
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

from .constants import (
    DEFAULT_CHECK_INTERVAL_SECONDS,
    DEFAULT_DEDUP_WINDOW_MINUTES,
    DEFAULT_DB_PATH,
    DEFAULT_SMTP_HOST,
    DEFAULT_SMTP_PORT,
    DEFAULT_SMTP_FROM,
    DEFAULT_SMTP_TIMEOUT_SECONDS,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_DASHBOARD_URL,
    PAGERDUTY_EVENTS_URL,
    SUPPRESSION_GRANULARITY_HOUR,
    VALID_SUPPRESSION_GRANULARITIES,
    VALID_LOG_FORMATS,
)
from .exceptions import InvalidConfigError

logger = logging.getLogger(__name__)


def _get_int_env(key: str, default: int) -> int:
    """Safely get an integer from environment variable.

    Attempts to parse an environment variable as an integer with validation.
    Returns the default value if the variable is not set, cannot be parsed,
    or is not a positive integer.

    Args:
        key: Environment variable name to read.
        default: Default value to return if variable is invalid or missing.

    Returns:
        Integer value from environment variable if valid and positive,
        otherwise the default value.

    Example:
        >>> import os
        >>> os.environ['TEST_VAR'] = '100'
        >>> _get_int_env('TEST_VAR', 50)
        100
        >>> _get_int_env('MISSING_VAR', 50)
        50
        >>> os.environ['BAD_VAR'] = 'not_a_number'
        >>> _get_int_env('BAD_VAR', 50)  # Logs warning, returns default
        50
    """
    value = os.getenv(key)
    if value is None or value == "":
        return default

    try:
        result = int(value)
        if result <= 0:
            logger.warning(
                f"Environment variable {key}={value} must be positive. Using default: {default}"
            )
            return default
        return result
    except ValueError:
        logger.warning(
            f"Environment variable {key}={value} is not a valid integer. Using default: {default}"
        )
        return default


def _get_str_env(key: str, default: str) -> str:
    """Read a string variable, treating an empty value as unset."""
    value = os.getenv(key)
    if not value:
        return default
    return value


@dataclass
class AlerterConfig:
    """
    Configuration for the Auspex alerting engine.

    Configuration can be loaded from:
    1. Configuration files (YAML or TOML)
    2. Environment variables (override file settings)
    3. Direct instantiation with parameters

    Environment variables:
        AUSPEX_ALERTER_CHECK_INTERVAL_SECONDS: Seconds between correlation cycles (default: 30)
        AUSPEX_ALERTER_DEDUP_WINDOW_MINUTES: Re-alert policy window in minutes (default: 15)
        AUSPEX_DB_PATH: Path to the SQLite database (default: "auspex.db")
        AUSPEX_SMTP_HOST: Mail relay host (default: "smtp.gmail.com")
        AUSPEX_SMTP_PORT: Mail relay port (default: 587)
        AUSPEX_SMTP_USER: Mail relay user (default: "")
        AUSPEX_SMTP_PASSWORD: Mail relay password (default: "")
        AUSPEX_SMTP_FROM: Default sender address (default: "auspex-alerts@localhost")
        AUSPEX_SMTP_TIMEOUT: Mail relay timeout in seconds (default: 10)
        AUSPEX_PAGERDUTY_INTEGRATION_KEY: Default paging routing key (default: "")
        AUSPEX_HTTP_TIMEOUT: Paging service timeout in seconds (default: 10)
        AUSPEX_DASHBOARD_URL: Base URL used for links in emails
        AUSPEX_SUPPRESSION_GRANULARITY: "hour" or "minute" (default: "hour")
        AUSPEX_LOG_LEVEL: Logging level (default: "INFO")
        AUSPEX_LOG_FILE: Log file path (optional)
        AUSPEX_LOG_FORMAT: "text" or "json" (default: "text")

    Config file locations (searched in order):
        ./auspex.yaml, ./auspex.toml
        ~/.auspex.yaml, ~/.auspex.toml
        /etc/auspex.yaml, /etc/auspex.toml
    """
    # Scheduling / correlation policy
    check_interval_seconds: int = DEFAULT_CHECK_INTERVAL_SECONDS
    dedup_window_minutes: int = DEFAULT_DEDUP_WINDOW_MINUTES
    suppression_granularity: str = SUPPRESSION_GRANULARITY_HOUR

    # Storage
    db_path: str = DEFAULT_DB_PATH

    # Mail relay
    smtp_host: str = DEFAULT_SMTP_HOST
    smtp_port: int = DEFAULT_SMTP_PORT
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = DEFAULT_SMTP_FROM
    smtp_timeout_seconds: int = DEFAULT_SMTP_TIMEOUT_SECONDS

    # Paging service
    pagerduty_default_key: str = ""
    pagerduty_events_url: str = PAGERDUTY_EVENTS_URL
    http_timeout_seconds: int = DEFAULT_HTTP_TIMEOUT_SECONDS

    dashboard_url: str = DEFAULT_DASHBOARD_URL

    # Logging configuration
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_format: str = "text"

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            InvalidConfigError: If any configuration value is invalid
        """
        errors = []

        # Validate positive integers
        if self.check_interval_seconds <= 0:
            errors.append(
                f"check_interval_seconds must be positive, got {self.check_interval_seconds}"
            )
        if self.dedup_window_minutes <= 0:
            errors.append(
                f"dedup_window_minutes must be positive, got {self.dedup_window_minutes}"
            )
        if not (0 < self.smtp_port < 65536):
            errors.append(f"smtp_port must be between 1 and 65535, got {self.smtp_port}")
        if self.smtp_timeout_seconds <= 0:
            errors.append(f"smtp_timeout_seconds must be positive, got {self.smtp_timeout_seconds}")
        if self.http_timeout_seconds <= 0:
            errors.append(f"http_timeout_seconds must be positive, got {self.http_timeout_seconds}")

        if not self.db_path:
            errors.append("db_path must not be empty")

        if self.suppression_granularity not in VALID_SUPPRESSION_GRANULARITIES:
            errors.append(
                f"suppression_granularity must be one of {VALID_SUPPRESSION_GRANULARITIES}, "
                f"got '{self.suppression_granularity}'"
            )

        # Validate log settings
        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.log_level.upper() not in valid_log_levels:
            errors.append(
                f"log_level must be one of {valid_log_levels}, got '{self.log_level}'"
            )
        if self.log_format not in VALID_LOG_FORMATS:
            errors.append(
                f"log_format must be one of {VALID_LOG_FORMATS}, got '{self.log_format}'"
            )

        if errors:
            raise InvalidConfigError(
                "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            )

    @property
    def smtp_configured(self) -> bool:
        """True when the mail relay has host and credentials."""
        return bool(self.smtp_host and self.smtp_user and self.smtp_password)

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        """Return the configuration as a dictionary, hiding secrets by default."""
        data = asdict(self)
        if redact:
            for key in ("smtp_password", "pagerduty_default_key"):
                if data[key]:
                    data[key] = "********"
        return data

    @classmethod
    def from_env(cls) -> 'AlerterConfig':
        """
        Create configuration from environment variables only.

        Returns:
            AlerterConfig instance populated from environment variables
        """
        return cls(
            check_interval_seconds=_get_int_env(
                "AUSPEX_ALERTER_CHECK_INTERVAL_SECONDS", DEFAULT_CHECK_INTERVAL_SECONDS
            ),
            dedup_window_minutes=_get_int_env(
                "AUSPEX_ALERTER_DEDUP_WINDOW_MINUTES", DEFAULT_DEDUP_WINDOW_MINUTES
            ),
            suppression_granularity=_get_str_env(
                "AUSPEX_SUPPRESSION_GRANULARITY", SUPPRESSION_GRANULARITY_HOUR
            ).lower(),
            db_path=_get_str_env("AUSPEX_DB_PATH", DEFAULT_DB_PATH),
            smtp_host=_get_str_env("AUSPEX_SMTP_HOST", DEFAULT_SMTP_HOST),
            smtp_port=_get_int_env("AUSPEX_SMTP_PORT", DEFAULT_SMTP_PORT),
            smtp_user=_get_str_env("AUSPEX_SMTP_USER", ""),
            smtp_password=_get_str_env("AUSPEX_SMTP_PASSWORD", ""),
            smtp_from=_get_str_env("AUSPEX_SMTP_FROM", DEFAULT_SMTP_FROM),
            smtp_timeout_seconds=_get_int_env("AUSPEX_SMTP_TIMEOUT", DEFAULT_SMTP_TIMEOUT_SECONDS),
            pagerduty_default_key=_get_str_env("AUSPEX_PAGERDUTY_INTEGRATION_KEY", ""),
            pagerduty_events_url=_get_str_env("AUSPEX_PAGERDUTY_EVENTS_URL", PAGERDUTY_EVENTS_URL),
            http_timeout_seconds=_get_int_env("AUSPEX_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT_SECONDS),
            dashboard_url=_get_str_env("AUSPEX_DASHBOARD_URL", DEFAULT_DASHBOARD_URL),
            log_level=_get_str_env("AUSPEX_LOG_LEVEL", "INFO"),
            log_file=os.getenv("AUSPEX_LOG_FILE") or None,
            log_format=_get_str_env("AUSPEX_LOG_FORMAT", "text").lower(),
        )

    @classmethod
    def from_file(cls, config_path: Optional[str] = None) -> 'AlerterConfig':
        """
        Create configuration from file with environment variable overrides.

        Loads configuration from YAML or TOML file and applies environment
        variable overrides. If no path is provided, searches standard locations.
        An explicit path that cannot be read is an error; a failure while
        reading a discovered file falls back to environment variables.

        Args:
            config_path: Optional explicit path to config file.
                        If None, searches standard locations.

        Returns:
            AlerterConfig instance with merged configuration

        Raises:
            FileNotFoundError: If explicit config_path doesn't exist

        Example:
            >>> config = AlerterConfig.from_file("my-config.yaml")
            >>> config = AlerterConfig.from_file()  # Auto-search
        """
        from .config_loader import load_config_with_overrides

        if config_path:
            return cls(**load_config_with_overrides(config_path))

        try:
            config_dict = load_config_with_overrides(None)
            return cls(**config_dict)
        except Exception as e:
            logger.error(f"Failed to load configuration from file: {e}")
            logger.warning("Falling back to environment variable configuration")
            return cls.from_env()

    @classmethod
    def load(cls, config_path: Optional[str] = None, use_file: bool = True) -> 'AlerterConfig':
        """
        Load configuration with automatic fallback.

        This is the recommended method for loading configuration.

        Args:
            config_path: Optional explicit path to config file
            use_file: If True, attempts to load from file before env vars

        Returns:
            AlerterConfig instance

        Example:
            >>> # Try file, fall back to env vars
            >>> config = AlerterConfig.load()
            >>>
            >>> # Use specific file
            >>> config = AlerterConfig.load("my-config.yaml")
            >>>
            >>> # Only use env vars
            >>> config = AlerterConfig.load(use_file=False)
        """
        if use_file:
            return cls.from_file(config_path)
        else:
            return cls.from_env()
