"""
GreenTwin Configuration

Copy this file to config.py and adjust the values you need.
Any key left out falls back to greentwin/config/defaults.py.
"""

# =============================================================================
# Paths
# =============================================================================

DATA_DIR = "data"                     # SQLite state lives here
USER_ID = "default"                   # One behavior profile per user id

# =============================================================================
# Sync collector
# =============================================================================

SYNC_URLS = [
    "ws://localhost:8080",
    "ws://127.0.0.1:8080",
    # "wss://greentwin.example.org/ws",
]
SYNC_HTTP_URL = ""                    # POST fallback, e.g. "http://localhost:3000/api/events"

SYNC_HEARTBEAT_INTERVAL = 30.0        # Seconds between heartbeats while connected
SYNC_LIVENESS_INTERVAL = 10.0         # Seconds between reconnect probes while offline
SYNC_MAX_RECONNECT_ATTEMPTS = 5       # Backoff retries before waiting for the probe
SYNC_BACKOFF_BASE = 1.0               # First reconnect delay (seconds)
SYNC_BACKOFF_CAP = 30.0               # Longest reconnect delay (seconds)

# =============================================================================
# Offline queue
# =============================================================================

OFFLINE_QUEUE_CAPACITY = 1000         # Oldest events are evicted past this
FLUSH_BATCH_SIZE = 10
FLUSH_MAX_FAILURES = 5                # Abort a flush after this many failures
FLUSH_EVENT_DELAY = 0.1               # Pause between deliveries (seconds)

# =============================================================================
# Behavior profile
# =============================================================================

PROFILE_MAX_INTERACTIONS = 500
SIMILARITY_THRESHOLD = 0.5            # Weighted match needed for "similar context"
EFFECTIVENESS_SUCCESS_WEIGHT = 0.7    # Blend of success rate ...
EFFECTIVENESS_CO2_WEIGHT = 0.3        # ... and normalised CO2 saved
EFFECTIVENESS_CO2_SCALE_KG = 5.0      # Average saving that counts as "full marks"

# =============================================================================
# Predictive triggers and delays
# =============================================================================

PREDICTIVE_CONFIDENCE_THRESHOLD = 0.7
DELAY_HOURS = 24
DELAY_REMINDER_LEAD_HOURS = 2

LOG_LEVEL = "INFO"
