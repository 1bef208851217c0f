"""Configuration and settings."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
OUTPUT_DIR = PROJECT_ROOT / "output"
INBOX_PATH = DATA_DIR / "inbox.json"
DIRECTORY_PATH = DATA_DIR / "directory.json"

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'mailcase.sqlite'}")

# Logging
LOG_DIR = OUTPUT_DIR / "logs"
LOG_FILE = LOG_DIR / "mailcase.jsonl"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_CONSOLE_FORMAT = os.getenv("LOG_CONSOLE_FORMAT", "console").lower()  # "console" | "json"
VERBOSE_LOGGING = os.getenv("VERBOSE_LOGGING", "false").lower() == "true"

# Ensure log directory exists
LOG_DIR.mkdir(parents=True, exist_ok=True)

# Graph API (for real provider)
AZURE_TENANT_ID = os.getenv("AZURE_TENANT_ID", "")
AZURE_CLIENT_ID = os.getenv("AZURE_CLIENT_ID", "")
GRAPH_MAIL_FOLDER = os.getenv("GRAPH_MAIL_FOLDER", "inbox")

# Delta sync
SYNC_PAGE_SIZE = int(os.getenv("SYNC_PAGE_SIZE", "200"))
SYNC_MAX_MESSAGES = int(os.getenv("SYNC_MAX_MESSAGES", "10000"))  # safety limit per run
SYNC_FETCH_MAX_ATTEMPTS = int(os.getenv("SYNC_FETCH_MAX_ATTEMPTS", "3"))
SYNC_FETCH_BASE_DELAY = float(os.getenv("SYNC_FETCH_BASE_DELAY", "0.5"))

# Reclassifier worker pool
RECLASSIFY_WORKER_COUNT = int(os.getenv("RECLASSIFY_WORKER_COUNT", "4"))
RECLASSIFY_MAX_PASSES = int(os.getenv("RECLASSIFY_MAX_PASSES", "3"))
RECLASSIFY_PROGRESS_EVERY = int(os.getenv("RECLASSIFY_PROGRESS_EVERY", "100"))

# Classification thresholds (tunable; validate against labeled data before changing)
CLASSIFY_THRESHOLD = float(os.getenv("CLASSIFY_THRESHOLD", "0.75"))
FLOOR_THRESHOLD = float(os.getenv("FLOOR_THRESHOLD", "0.4"))
SINGLE_CASE_CONFIDENCE = float(os.getenv("SINGLE_CASE_CONFIDENCE", "0.9"))

# Classification signal weights
WEIGHT_PARTICIPANT = float(os.getenv("WEIGHT_PARTICIPANT", "0.4"))
WEIGHT_IDENTIFIER = float(os.getenv("WEIGHT_IDENTIFIER", "0.6"))
WEIGHT_KEYWORD = float(os.getenv("WEIGHT_KEYWORD", "0.2"))
PARTICIPANT_SATURATION = int(os.getenv("PARTICIPANT_SATURATION", "2"))
RECENT_ACTIVITY_DAYS = int(os.getenv("RECENT_ACTIVITY_DAYS", "7"))

# Delegated Graph auth (MSAL token cache)
TOKEN_CACHE_PATH = Path(
    os.getenv("MAILCASE_TOKEN_CACHE", str(Path.home() / ".mailcase" / "token_cache.json"))
)
