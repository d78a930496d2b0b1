"""Date helpers for stacker_lite.

All engine arithmetic works on calendar dates (``datetime.date``) and their
ISO ``YYYY-MM-DD`` string form. Time of day never takes part in projection or
rollover; it only survives as a display/sort field.
"""

from __future__ import annotations

import datetime
import logging
import os
import re
import time
from collections.abc import Callable
from typing import Optional

logger = logging.getLogger(__name__)

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
ISO_TIME_RE = re.compile(r"^\d{2}:\d{2}")

TEST_DATE_ENV = "STACKER_TEST_DATE"

# Host-injectable source of "today"
Clock = Callable[[], datetime.date]

# Source of record timestamps in epoch milliseconds
Timestamp = Callable[[], int]


def today() -> datetime.date:
    """Return the local calendar date.

    Can be overridden for testing via the STACKER_TEST_DATE environment variable
    (ISO 8601 date or datetime, e.g. "2024-01-08" or "2024-01-08T09:30:00").

    Returns:
        Today's date
    """
    test_date = os.environ.get(TEST_DATE_ENV)
    if test_date:
        try:
            from dateutil import parser as date_parser

            return date_parser.isoparse(test_date).date()
        except (ValueError, OverflowError) as e:
            logger.warning("Invalid %s=%r ignored: %s", TEST_DATE_ENV, test_date, e)
    return datetime.date.today()


def now_ms() -> int:
    """Current time in epoch milliseconds, the unit of ``created_at``/``updated_at``."""
    return int(time.time() * 1000)


def is_iso_date(value: object) -> bool:
    """Return True if value is a real calendar date in strict YYYY-MM-DD form."""
    if not isinstance(value, str) or not ISO_DATE_RE.match(value):
        return False
    try:
        datetime.date.fromisoformat(value)
    except ValueError:
        return False
    return True


def strip_time(value: object) -> Optional[str]:
    """Return the pure ``YYYY-MM-DD`` part of a date-like string, or None.

    Safely handles "YYYY-MM-DDT12:00:00" by splitting on the ``T``.
    """
    if isinstance(value, datetime.datetime):
        return value.date().isoformat()
    if isinstance(value, datetime.date):
        return value.isoformat()
    if not isinstance(value, str) or not value:
        return None
    clean = value.strip().split("T", 1)[0]
    return clean if is_iso_date(clean) else None


def extract_time(value: object) -> Optional[str]:
    """Extract "HH:mm" from a dirty date string if present."""
    if not isinstance(value, str) or "T" not in value:
        return None
    time_part = value.split("T", 1)[1]
    if ISO_TIME_RE.match(time_part):
        return time_part[:5]
    return None


def parse_iso_date(value: str | datetime.date) -> datetime.date:
    """Parse an ISO date (or pass a date through).

    Raises:
        ValueError: If the value is not a valid ISO date
    """
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(value)


def to_iso(value: datetime.date) -> str:
    """Format a date (or datetime) as ``YYYY-MM-DD``."""
    if isinstance(value, datetime.datetime):
        value = value.date()
    return value.isoformat()


def add_days(value: datetime.date, days: int) -> datetime.date:
    return value + datetime.timedelta(days=days)


def days_between(start: datetime.date, end: datetime.date) -> int:
    """Whole calendar days from start to end (negative if end is earlier)."""
    return (end - start).days


def window_end(start: datetime.date, number_of_days: int) -> datetime.date:
    """Last date (inclusive) of a window of ``number_of_days`` days beginning at start."""
    return start + datetime.timedelta(days=max(number_of_days, 1) - 1)


def in_range(value: str | datetime.date, start: datetime.date, end: datetime.date) -> bool:
    """Inclusive range check that tolerates malformed date strings (returns False)."""
    try:
        d = parse_iso_date(value)
    except (TypeError, ValueError):
        return False
    return start <= d <= end
