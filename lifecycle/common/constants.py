"""Application constants."""

USER_AGENT = "directory-lifecycle/1.0 (+verification; contact: configured-email)"
REMINDER_DAYS = 90
EXPIRY_DAYS = 100
DEFAULT_SCHEDULE_CRON = "0 9 * * *"
COMMANDS = (
    "scan",
    "preview",
    "schedule",
    "geocode",
)
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "component",
    "organisation_id",
    "postcode",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "error_code",
    "message",
)
