"""
Constants, thresholds, preference keys and purge targets.
"""

AGENT_VERSION = "1.4.0"

# ─── Credentials ─────────────────────────────────────────────────
MIN_TOKEN_LENGTH = 10          # Shorter tokens are rejected before use in a header
MIN_DEPLOYMENT_CODE_LENGTH = 3

# ─── Timing ──────────────────────────────────────────────────────
DEBOUNCE_SEC = 1.0                     # Quiet period before a code check fires
DISABLE_FLAG_VALIDITY_MS = 10 * 60 * 1000   # Disable flag ignored after 10 min
WATCHDOG_REFRESH_SEC = 60              # Liveness marker refresh while running
BACKGROUND_TICK_SEC = 30               # Location / heartbeat report interval
SESSION_CHECK_ATTEMPTS = 2

# ─── Network ─────────────────────────────────────────────────────
API_TIMEOUT_STATUS = 8
API_TIMEOUT_LOGIN = 15
API_TIMEOUT_LOGOUT = 10
API_TIMEOUT_UPDATE = 20
CONNECTIVITY_TIMEOUT_SEC = 4

# Transport-level retries (urllib3) for gateway errors only; 4xx answers
# such as 401 reach the caller untouched.
HTTP_RETRY_TOTAL = 3
HTTP_RETRY_BACKOFF = 2
HTTP_RETRY_STATUSES = (502, 503, 504)

DEFAULT_SERVER_URL = "https://asia-southeast1-nexuspolice-13560.cloudfunctions.net"

# ─── Plaintext preference keys ───────────────────────────────────
KEY_TOKEN = "token"
KEY_DEPLOYMENT_CODE = "deploymentCode"
KEY_TOKEN_LOCKED = "isTokenLocked"
KEY_BACKUP_STALE = "credentialBackupStale"
KEY_SERVICE_DISABLED = "background_service_permanently_disabled"
KEY_SERVICE_DISABLE_TS = "background_service_disable_timestamp"
KEY_LAST_ALIVE = "app_last_alive_timestamp"
KEY_AUTO_INSTALL_UPDATES = "auto_install_updates"

# ─── Encrypted store keys ────────────────────────────────────────
SECURE_KEY_TOKEN = "encrypted_token"
SECURE_KEY_DEPLOYMENT_CODE = "encrypted_deployment_code"

# ─── Purge ───────────────────────────────────────────────────────
DATABASE_EXTENSIONS = frozenset({".db", ".sqlite", ".sqlite3", ".realm"})

# Names scrubbed (best effort) from in-process objects on purge.
SENSITIVE_FIELDS = (
    "token",
    "deployment_code",
    "password",
    "secret",
    "key",
    "credential",
)
