"""
Runtime settings. Every value can be overridden through the environment.
"""
import os
from datetime import timedelta
from pathlib import Path

DB_PATH = Path(os.environ.get("STUDIO_DB_PATH", Path(__file__).parent / "booking.db"))
STUDIO_TIMEZONE = os.environ.get("STUDIO_TIMEZONE", "Asia/Kolkata")
BOOKING_CUTOFF = timedelta(minutes=int(os.environ.get("BOOKING_CUTOFF_MINUTES", "60")))
SQLITE_TIMEOUT_SECONDS = float(os.environ.get("SQLITE_TIMEOUT_SECONDS", "5"))
SEED_ON_STARTUP = os.environ.get("SEED_ON_STARTUP", "true").lower() in ("1", "true", "yes")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
