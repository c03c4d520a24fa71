"""Google Tasks domain configuration - endpoints, buffers and retry tuning."""

# OAuth endpoints
AUTH_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
TASKS_SCOPE = "https://www.googleapis.com/auth/tasks"

# REST API
TASKS_API_URL = "https://tasks.googleapis.com/tasks/v1"
REQUEST_TIMEOUT = 30  # seconds
MAX_PAGE_SIZE = 100

# Local callback listener
CALLBACK_HOST = "127.0.0.1"
CALLBACK_PATH = "/oauth2callback"
CALLBACK_SHUTDOWN_DELAY = 2.0  # seconds, lets the browser render the result page

# Token lifecycle
CODE_VERIFIER_BYTES = 32
TOKEN_EXPIRY_BUFFER = 300  # seconds (5 minutes)

# Token store keys
TOKEN_DATA_KEY = "google_tasks_token_data"
CODE_VERIFIER_KEY = "google_tasks_code_verifier"
REDIRECT_URI_KEY = "google_tasks_redirect_uri"

# Retry wrapper
MAX_RETRIES = 3
BASE_RETRY_DELAY = 1.0  # seconds, doubled each attempt

# Metadata embedded in reminder lines
METADATA_MARKER = "gtask"
CHECKSUM_DELIMITER = "|~|"

# Periodic sync
MIN_POLL_INTERVAL = 60  # seconds
AUTH_PROMPT_INTERVAL = 300  # seconds between "please re-authorize" warnings

# Stale-link policy for tasks that are neither active, completed nor deleted
STALE_POLICY_RECREATE = "recreate"
STALE_POLICY_SKIP = "skip"
STALE_POLICIES = (STALE_POLICY_RECREATE, STALE_POLICY_SKIP)
