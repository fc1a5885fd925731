"""Paths and constants for the triage dashboard."""

from pathlib import Path

# ── Base directory (parent of triage/) ──
BASE_DIR = Path(__file__).resolve().parent.parent.parent
DATA_DIR = BASE_DIR / "data"

# ── Data files (read-only except settings_overrides.json) ──
EMAILS_JSON = DATA_DIR / "emails.json"
EMAIL_VOLUME_CSV = DATA_DIR / "email_volume.csv"
ANALYTICS_JSON = DATA_DIR / "analytics.json"
SETTINGS_OVERRIDES_JSON = BASE_DIR / "settings_overrides.json"

# ── Server ──
HOST = "0.0.0.0"
PORT = 3000

# ── Queue timing (seconds) ──
CADENCE_SECONDS = 4.0
PROCESS_SECONDS = 3.0
RUNNER_POLL_SECONDS = 0.5
AUTO_START = True

# ── Email statuses that feed the processing queue ──
QUEUE_STATUSES = frozenset(["pending", "processing"])
