"""
Configuration file loader for Auspex.

Supports loading configuration from YAML and TOML files with environment variable
overrides and a standard search path.

File layout (YAML shown, TOML uses the same sections):

    alerter:
      check_interval_seconds: 30
      dedup_window_minutes: 15
      suppression_granularity: hour
    database:
      path: /var/lib/auspex/auspex.db
    smtp:
      host: smtp.example.com
      port: 587
      user: alerts
      password: secret
      from: auspex@example.com
      timeout: 10
    pagerduty:
      routing_key: R0UT1NGKEY
      events_url: https://events.pagerduty.com/v2/enqueue
      timeout: 10
    dashboard:
      url: http://monitor.example.com
    logging:
      level: INFO
      file: /var/log/auspex/alerter.log
      format: json
"""

import os
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# (section, key) in the config file -> AlerterConfig field
FIELD_MAP = {
    ("alerter", "check_interval_seconds"): "check_interval_seconds",
    ("alerter", "dedup_window_minutes"): "dedup_window_minutes",
    ("alerter", "suppression_granularity"): "suppression_granularity",
    ("database", "path"): "db_path",
    ("smtp", "host"): "smtp_host",
    ("smtp", "port"): "smtp_port",
    ("smtp", "user"): "smtp_user",
    ("smtp", "password"): "smtp_password",
    ("smtp", "from"): "smtp_from",
    ("smtp", "timeout"): "smtp_timeout_seconds",
    ("pagerduty", "routing_key"): "pagerduty_default_key",
    ("pagerduty", "events_url"): "pagerduty_events_url",
    ("pagerduty", "timeout"): "http_timeout_seconds",
    ("dashboard", "url"): "dashboard_url",
    ("logging", "level"): "log_level",
    ("logging", "file"): "log_file",
    ("logging", "format"): "log_format",
}

# environment variable -> (section, key, type)
ENV_MAP = {
    "AUSPEX_ALERTER_CHECK_INTERVAL_SECONDS": ("alerter", "check_interval_seconds", int),
    "AUSPEX_ALERTER_DEDUP_WINDOW_MINUTES": ("alerter", "dedup_window_minutes", int),
    "AUSPEX_SUPPRESSION_GRANULARITY": ("alerter", "suppression_granularity", str),
    "AUSPEX_DB_PATH": ("database", "path", str),
    "AUSPEX_SMTP_HOST": ("smtp", "host", str),
    "AUSPEX_SMTP_PORT": ("smtp", "port", int),
    "AUSPEX_SMTP_USER": ("smtp", "user", str),
    "AUSPEX_SMTP_PASSWORD": ("smtp", "password", str),
    "AUSPEX_SMTP_FROM": ("smtp", "from", str),
    "AUSPEX_SMTP_TIMEOUT": ("smtp", "timeout", int),
    "AUSPEX_PAGERDUTY_INTEGRATION_KEY": ("pagerduty", "routing_key", str),
    "AUSPEX_PAGERDUTY_EVENTS_URL": ("pagerduty", "events_url", str),
    "AUSPEX_HTTP_TIMEOUT": ("pagerduty", "timeout", int),
    "AUSPEX_DASHBOARD_URL": ("dashboard", "url", str),
    "AUSPEX_LOG_LEVEL": ("logging", "level", str),
    "AUSPEX_LOG_FILE": ("logging", "file", str),
    "AUSPEX_LOG_FORMAT": ("logging", "format", str),
}


def load_yaml_file(path: Path) -> dict:
    """
    Load configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Dictionary containing configuration data

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If YAML parsing fails
    """
    import yaml

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f)
            return config if config is not None else {}
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse YAML config file {path}: {e}")


def load_toml_file(path: Path) -> dict:
    """
    Load configuration from a TOML file.

    Args:
        path: Path to the TOML file

    Returns:
        Dictionary containing configuration data

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If TOML parsing fails
    """
    try:
        # Python 3.11+ has tomllib built-in
        import tomllib
    except ImportError:
        import tomli as tomllib

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with open(path, 'rb') as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Failed to parse TOML config file {path}: {e}")


def load_config_file(path: str) -> dict:
    """
    Load configuration from a YAML or TOML file.

    The file format is determined by the file extension (.yaml, .yml, or .toml).

    Args:
        path: Path to the configuration file

    Returns:
        Dictionary containing configuration data

    Raises:
        ValueError: If file extension is not supported
        FileNotFoundError: If file doesn't exist
    """
    file_path = Path(path)
    suffix = file_path.suffix.lower()

    if suffix in ['.yaml', '.yml']:
        return load_yaml_file(file_path)
    elif suffix == '.toml':
        return load_toml_file(file_path)
    else:
        raise ValueError(
            f"Unsupported config file format: {suffix}. "
            "Supported formats: .yaml, .yml, .toml"
        )


def find_config_file() -> Optional[Path]:
    """
    Search for a configuration file in standard locations.

    Search order:
    1. ./auspex.yaml
    2. ./auspex.toml
    3. ~/.auspex.yaml
    4. ~/.auspex.toml
    5. /etc/auspex.yaml
    6. /etc/auspex.toml

    Returns:
        Path to the first configuration file found, or None if no file is found
    """
    search_paths = [
        Path.cwd() / "auspex.yaml",
        Path.cwd() / "auspex.toml",
        Path.home() / ".auspex.yaml",
        Path.home() / ".auspex.toml",
        Path("/etc/auspex.yaml"),
        Path("/etc/auspex.toml"),
    ]

    for path in search_paths:
        if path.exists() and path.is_file():
            logger.info(f"Found configuration file: {path}")
            return path

    logger.debug("No configuration file found in standard locations")
    return None


def get_env_config() -> dict:
    """
    Extract configuration from environment variables.

    Environment variables override file-based configuration. Empty values
    are ignored. Integer values that fail to parse or are not positive are
    logged and skipped.

    Returns:
        Nested dictionary (same sections as the config file)
    """
    config: dict = {}

    for env_key, (section, key, value_type) in ENV_MAP.items():
        raw = os.getenv(env_key)
        if not raw:
            continue

        if value_type is int:
            try:
                value = int(raw)
            except ValueError:
                logger.warning(f"Invalid {env_key}, ignoring")
                continue
            if value <= 0:
                logger.warning(f"{env_key} must be positive, ignoring")
                continue
        else:
            value = raw

        config.setdefault(section, {})[key] = value

    return config


def deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries, with override values taking precedence.

    Args:
        base: Base dictionary
        override: Override dictionary (values take precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def flatten_config(config: dict) -> dict:
    """
    Flatten nested configuration dictionary to match AlerterConfig fields.

    Unknown sections and keys are ignored with a debug message.

    Args:
        config: Nested configuration dictionary

    Returns:
        Flattened configuration dictionary
    """
    flat = {}

    for section, values in config.items():
        if not isinstance(values, dict):
            logger.debug(f"Ignoring non-section config entry: {section}")
            continue
        for key, value in values.items():
            field_name = FIELD_MAP.get((section, key))
            if field_name is None:
                logger.debug(f"Ignoring unknown config key: {section}.{key}")
                continue
            flat[field_name] = value

    return flat


def merge_config(file_config: dict, env_config: dict) -> dict:
    """
    Merge file-based and environment-based configuration.

    Environment variables take precedence over file-based configuration.

    Args:
        file_config: Configuration loaded from file
        env_config: Configuration from environment variables

    Returns:
        Merged configuration dictionary (flattened)
    """
    merged = deep_merge(file_config, env_config)
    return flatten_config(merged)


def load_config_with_overrides(config_path: Optional[str] = None) -> dict:
    """
    Load configuration from file with environment variable overrides.

    Args:
        config_path: Optional explicit path to config file.
                    If None, searches standard locations.

    Returns:
        Dictionary containing merged configuration

    Raises:
        FileNotFoundError: If explicit config_path is provided but doesn't exist
        ValueError: If config parsing fails
    """
    file_config = {}

    if config_path:
        file_config = load_config_file(config_path)
        logger.info(f"Loaded configuration from: {config_path}")
    else:
        found_path = find_config_file()
        if found_path:
            file_config = load_config_file(str(found_path))
            logger.info(f"Loaded configuration from: {found_path}")

    env_config = get_env_config()
    if env_config:
        logger.info("Applying environment variable overrides")

    return merge_config(file_config, env_config)
