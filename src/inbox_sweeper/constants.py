"""Constants for Inbox Sweeper."""

import os
from pathlib import Path

# --- Config paths ---
CONFIG_DIR = Path(os.environ.get("INBOX_SWEEPER_HOME", Path.home() / ".inbox-sweeper"))
CREDENTIALS_PATH = CONFIG_DIR / "credentials.json"
TOKEN_PATH = CONFIG_DIR / "token.json"
STORAGE_DB_PATH = CONFIG_DIR / "storage.db"

# --- Gmail API ---
# Full mail scope is required for permanent deletion.
SCOPES = ["https://mail.google.com/"]
PAGE_SIZE = 50  # message refs per list call
RETRYABLE_STATUSES = (429, 500, 503)

# --- Pacing (seconds) ---
MESSAGE_DELAY = 0.1
PAGE_DELAY = 0.5

# --- Reporting cadence ---
STATUS_EVERY_MESSAGES = 10  # status text refresh while analyzing a page
STATUS_EVERY_DELETIONS = 5
MILESTONE_EVERY_DELETIONS = 25
PROGRESS_SAVE_EVERY = 10  # persisted progress snapshot
ESTIMATED_PAGES = 10  # rough percentage estimate
POLL_INTERVAL = 2.0

# --- Audit log ---
AUDIT_LOG_LIMIT = 1000

# --- Storage keys ---
_KEY_PREFIX = "inbox_sweeper."
KEY_CUSTOM_PRESETS = _KEY_PREFIX + "custom_presets"
KEY_CURRENT_PRESET = _KEY_PREFIX + "current_preset"
KEY_TASK_STATE = _KEY_PREFIX + "task_state"
KEY_SYNC_PROGRESS = _KEY_PREFIX + "sync_progress"
KEY_DELETED_MESSAGES = _KEY_PREFIX + "deleted_messages"

# --- Notifications ---
PROGRESS_NOTIFICATION_KEY = "email-cleaning-progress"

# --- Custom preset defaults ---
DEFAULT_MIN_SUBJECT_OR_SENDER = 1
DEFAULT_MIN_BODY = 2
