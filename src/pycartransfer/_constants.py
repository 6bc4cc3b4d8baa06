"""Internal constants shared across the library."""

DAY_SECONDS = 24 * 3600

DEFAULT_REQUEST_TTL: float = 7 * DAY_SECONDS
DEFAULT_NOTIFICATION_TTL: float = 30 * DAY_SECONDS
DEFAULT_HISTORY_WINDOW: float = 30 * DAY_SECONDS

# ------------------------------------------------------------------
# Collection names (persisted document namespaces)
# ------------------------------------------------------------------

TRANSFER_REQUESTS = "transfer_requests"
VEHICLES = "vehicles"
TRANSFER_LOGS = "transfer_logs"
NOTIFICATIONS = "notifications"

USER_AGENT = "pycartransfer-webhook/1"
