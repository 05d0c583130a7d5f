"""
Default values shared by the configuration layer and the alerting engine.
"""

# Scheduling
DEFAULT_CHECK_INTERVAL_SECONDS = 30
DEFAULT_DEDUP_WINDOW_MINUTES = 15

# Storage
DEFAULT_DB_PATH = "auspex.db"

# Mail relay
DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 587
DEFAULT_SMTP_FROM = "auspex-alerts@localhost"
DEFAULT_SMTP_TIMEOUT_SECONDS = 10

# Paging service
PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"
PAGERDUTY_ACCEPTED_STATUS = 202
PAGERDUTY_SOURCE = "auspex-monitor"
DEDUP_KEY_PREFIX = "auspex-target-"
DEFAULT_HTTP_TIMEOUT_SECONDS = 10

# Links rendered into notification bodies
DEFAULT_DASHBOARD_URL = "http://localhost:8080"

# Suppression windows
SUPPRESSION_GRANULARITY_HOUR = "hour"
SUPPRESSION_GRANULARITY_MINUTE = "minute"
VALID_SUPPRESSION_GRANULARITIES = (
    SUPPRESSION_GRANULARITY_HOUR,
    SUPPRESSION_GRANULARITY_MINUTE,
)

VALID_LOG_FORMATS = ("text", "json")

RULE_TYPE_STATUS_CHANGE = "status_change"
