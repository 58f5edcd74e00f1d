"""Default configuration values for GreenTwin."""

from typing import Literal

# Paths
DATA_DIR: str = "data"
USER_ID: str = "default"

# Sync collector (tried in order, rotated by reconnect attempt)
SYNC_URLS: list[str] = [
    "ws://localhost:8080",
    "ws://127.0.0.1:8080",
]
SYNC_HTTP_URL: str = ""  # e.g. "http://localhost:3000/api/events"

# Sync timing (seconds)
SYNC_HEARTBEAT_INTERVAL: float = 30.0
SYNC_LIVENESS_INTERVAL: float = 10.0
SYNC_MAX_RECONNECT_ATTEMPTS: int = 5
SYNC_BACKOFF_BASE: float = 1.0
SYNC_BACKOFF_CAP: float = 30.0

# Offline queue
OFFLINE_QUEUE_CAPACITY: int = 1000
FLUSH_BATCH_SIZE: int = 10
FLUSH_MAX_FAILURES: int = 5
FLUSH_EVENT_DELAY: float = 0.1

# Behavior profile
PROFILE_MAX_INTERACTIONS: int = 500
SIMILARITY_THRESHOLD: float = 0.5
EFFECTIVENESS_SUCCESS_WEIGHT: float = 0.7
EFFECTIVENESS_CO2_WEIGHT: float = 0.3
EFFECTIVENESS_CO2_SCALE_KG: float = 5.0

# Predictive triggers
PREDICTIVE_CONFIDENCE_THRESHOLD: float = 0.7

# Cooling-off delays
DELAY_HOURS: float = 24
DELAY_REMINDER_LEAD_HOURS: float = 2

# Logging
LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

# All configurable keys (for validation)
CONFIG_KEYS = {
    "DATA_DIR",
    "USER_ID",
    "SYNC_URLS",
    "SYNC_HTTP_URL",
    "SYNC_HEARTBEAT_INTERVAL",
    "SYNC_LIVENESS_INTERVAL",
    "SYNC_MAX_RECONNECT_ATTEMPTS",
    "SYNC_BACKOFF_BASE",
    "SYNC_BACKOFF_CAP",
    "OFFLINE_QUEUE_CAPACITY",
    "FLUSH_BATCH_SIZE",
    "FLUSH_MAX_FAILURES",
    "FLUSH_EVENT_DELAY",
    "PROFILE_MAX_INTERACTIONS",
    "SIMILARITY_THRESHOLD",
    "EFFECTIVENESS_SUCCESS_WEIGHT",
    "EFFECTIVENESS_CO2_WEIGHT",
    "EFFECTIVENESS_CO2_SCALE_KG",
    "PREDICTIVE_CONFIDENCE_THRESHOLD",
    "DELAY_HOURS",
    "DELAY_REMINDER_LEAD_HOURS",
    "LOG_LEVEL",
}
