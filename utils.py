"""
Utility helpers for timezone handling and pagination.
"""
from datetime import datetime
from typing import Tuple

import pytz

from config import STUDIO_TIMEZONE, DEFAULT_PAGE, DEFAULT_LIMIT, MAX_LIMIT

STUDIO_TZ = pytz.timezone(STUDIO_TIMEZONE)
UTC = pytz.UTC

DISPLAY_FORMAT = "%d %b %Y, %I:%M %p"


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_local(dt: datetime) -> datetime:
    """Localize naive datetimes to studio time; aware ones pass through"""
    if dt.tzinfo is None:
        return STUDIO_TZ.localize(dt)
    return dt


def to_utc(dt: datetime) -> datetime:
    """Convert to UTC, treating naive input as studio local time"""
    return ensure_local(dt).astimezone(UTC)


def to_iso(dt: datetime) -> str:
    """Fixed-width UTC string, so stored values sort lexically"""
    return to_utc(dt).isoformat(timespec="microseconds")


def parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(UTC)


def get_timezone(name: str):
    """Raises pytz.UnknownTimeZoneError for unknown names"""
    return pytz.timezone(name)


def format_datetime(dt: datetime) -> str:
    return dt.strftime(DISPLAY_FORMAT)


def clamp_pagination(page: int, limit: int) -> Tuple[int, int]:
    if page < 1:
        page = DEFAULT_PAGE
    if limit < 1:
        limit = DEFAULT_LIMIT
    if limit > MAX_LIMIT:
        limit = MAX_LIMIT
    return page, limit
