"""
Datetime utilities for consistent timezone handling across the application.

All persisted timestamps are timezone-aware UTC. Calendar dates for
appointments are date-only values; a booking date is interpreted as a
full UTC day.
"""

import logging
import re
from datetime import datetime, timezone, timedelta, date
from typing import Optional

logger = logging.getLogger(__name__)

_TIME_LABEL_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        Current datetime with UTC timezone
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware in UTC.

    Some backends (SQLite) return naive datetimes even for timezone-aware
    columns; those are assumed to already be UTC.

    Args:
        dt: Datetime to normalize

    Returns:
        Timezone-aware UTC datetime, or None if input is None
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def add_days(dt: datetime, days: int) -> datetime:
    """Return dt shifted by a whole number of days."""
    return dt + timedelta(days=days)


def parse_date_string(date_str: str) -> date:
    """
    Parse a calendar date in YYYY-MM-DD or YYYY/MM/DD format.

    Single-digit months/days are normalized. An ISO datetime string
    ("2025-01-06T00:00:00.000Z") is accepted and reduced to its date part,
    which keeps the date-only granularity of bookings.

    Args:
        date_str: Date string

    Returns:
        Date object

    Raises:
        ValueError: If date string cannot be parsed
    """
    if not date_str or not date_str.strip():
        raise ValueError("Date string cannot be empty")

    date_str = date_str.strip()
    if "T" in date_str:
        date_str = date_str.split("T", 1)[0]

    if '/' in date_str:
        parts = date_str.split('/')
    elif '-' in date_str:
        parts = date_str.split('-')
    else:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}")

    if len(parts) != 3:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}")

    year = parts[0].zfill(4)
    month = parts[1].zfill(2)
    day = parts[2].zfill(2)
    normalized = f"{year}-{month}-{day}"

    try:
        return datetime.strptime(normalized, '%Y-%m-%d').date()
    except ValueError as e:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}") from e


def day_of_week_index(value: date) -> int:
    """
    Day-of-week index with 0=Sunday..6=Saturday.

    Python's weekday() is 0=Monday..6=Sunday, so shift by one.
    """
    return (value.weekday() + 1) % 7


def is_valid_time_label(label: str) -> bool:
    """Check that a slot label is a 24h "HH:MM" string."""
    return isinstance(label, str) and bool(_TIME_LABEL_RE.match(label))
