"""Global configuration for the reminder ↔ Google Tasks sync."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


def _get_bool(key: str, default: str = "false") -> bool:
    return os.getenv(key, default).strip().lower() in ("1", "true", "yes", "on")


# Google OAuth (desktop client, PKCE)
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")  # Optional for PKCE clients

# Google Tasks integration
GTASKS_ENABLED = _get_bool("GTASKS_ENABLED", "true")
GTASKS_LIST_NAME = os.getenv("GTASKS_LIST_NAME", "Obsidian Reminders")
GTASKS_OAUTH_PORT = int(os.getenv("GTASKS_OAUTH_PORT", "8080"))
GTASKS_POLL_INTERVAL = int(os.getenv("GTASKS_POLL_INTERVAL", "300"))  # seconds
GTASKS_AUTH_TIMEOUT = int(os.getenv("GTASKS_AUTH_TIMEOUT", "300"))  # seconds
# What to do with a linked task that is neither active, completed nor deleted
GTASKS_STALE_STATUS_POLICY = os.getenv("GTASKS_STALE_STATUS_POLICY", "recreate")

# Markdown vault holding the reminders
REMINDER_VAULT_PATH = Path(os.getenv("REMINDER_VAULT_PATH", ".")).expanduser()

# ntfy push notifications (optional)
NTFY_SERVER = os.getenv("NTFY_SERVER", "https://ntfy.sh")
NTFY_TOPIC = os.getenv("NTFY_TOPIC")
NTFY_TOKEN = os.getenv("NTFY_TOKEN")
NTFY_PRIORITY = os.getenv("NTFY_PRIORITY", "default")

# Local state
DATA_DIR = Path(os.getenv("GTASKS_SYNC_HOME", str(Path.home() / ".gtasks-sync"))).expanduser()
TOKEN_STORE_DB = Path(os.getenv("GTASKS_TOKEN_DB", str(DATA_DIR / "tokens.db")))

# Logging
LOG_DIR = DATA_DIR / "logs"
LOG_DIR.mkdir(parents=True, exist_ok=True)
