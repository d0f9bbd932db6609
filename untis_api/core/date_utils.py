# untis_api/core/date_utils.py
import logging
import re
from datetime import date, datetime
from functools import lru_cache
from typing import Optional, Union

from .constants import UNKNOWN_DATE

log = logging.getLogger(__name__)

# --- Regular Expressions for Date Parsing ---
# Matches YYYYMMDD format (compact form used by the homework endpoints)
COMPACT_DATE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
# Matches YYYY-MM-DD format (ISO standard, used by the timetable endpoints)
HYPHEN_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
# Matches YYYY-MM-DDTHH:MM with optional seconds (grid entry durations)
UNTIS_DATETIME = re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2})(?::(\d{2}))?")

DateLike = Union[date, datetime]


def _calendar_date(value: DateLike) -> date:
    # datetime is a subclass of date; keep only the local calendar fields
    if isinstance(value, datetime):
        return value.date()
    return value


def to_compact_date(value: DateLike) -> str:
    """Formats a date as ``YYYYMMDD``."""
    d = _calendar_date(value)
    return f"{d.year:04d}{d.month:02d}{d.day:02d}"


def to_iso_date(value: DateLike) -> str:
    """Formats a date as ``YYYY-MM-DD``."""
    d = _calendar_date(value)
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


@lru_cache(maxsize=256)
def to_display_date(value: Optional[Union[int, str]]) -> str:
    """
    Formats a compact WebUntis date (e.g. 20250131 or "20250131") as DD.MM.YYYY.

    Args:
        value: The compact date as an integer or string.

    Returns:
        The display string, or "Unknown Date" if value is empty.
    """
    if not value:
        return UNKNOWN_DATE

    date_str = str(value)
    year = date_str[0:4]
    month = date_str[4:6]
    day = date_str[6:8]
    return f"{day}.{month}.{year}"


def compact_date_to_date(value: Union[int, str]) -> date:
    """
    Parses a compact ``YYYYMMDD`` value into a calendar date.

    Raises:
        ValueError: If the value is not a valid compact date.
    """
    match = COMPACT_DATE.match(str(value).strip())
    if not match:
        raise ValueError(f"Not a compact YYYYMMDD date: {value!r}")
    year, month, day = (int(part) for part in match.groups())
    return date(year, month, day)


def iso_to_compact_date(value: str) -> str:
    """Converts ``YYYY-MM-DD`` into ``YYYYMMDD``."""
    match = HYPHEN_DATE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Not an ISO YYYY-MM-DD date: {value!r}")
    year, month, day = (int(part) for part in match.groups())
    return to_compact_date(date(year, month, day))


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """
    Parses the date part of an ISO string ("2025-01-13" or "2025-01-13T00:00").

    Returns None for empty input; raises ValueError for malformed input.
    """
    if not value:
        return None
    match = HYPHEN_DATE.match(str(value).split("T")[0])
    if not match:
        raise ValueError(f"Not an ISO date: {value!r}")
    year, month, day = (int(part) for part in match.groups())
    return date(year, month, day)


def parse_untis_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parses a grid entry timestamp such as "2025-01-13T08:00".

    Returns None for empty input; raises ValueError for malformed input.
    """
    if not value:
        return None
    match = UNTIS_DATETIME.match(str(value))
    if not match:
        raise ValueError(f"Unrecognised timestamp: {value!r}")
    year, month, day, hour, minute, second = match.groups()
    return datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second or 0)
    )


def coerce_compact_date(value: Union[DateLike, str]) -> str:
    """Accepts a date or a compact/ISO string and returns ``YYYYMMDD``."""
    if isinstance(value, (date, datetime)):
        return to_compact_date(value)
    if HYPHEN_DATE.match(value):
        return iso_to_compact_date(value)
    compact_date_to_date(value)  # validates
    return value


def coerce_iso_date(value: Union[DateLike, str]) -> str:
    """Accepts a date or a compact/ISO string and returns ``YYYY-MM-DD``."""
    if isinstance(value, (date, datetime)):
        return to_iso_date(value)
    if COMPACT_DATE.match(value):
        return to_iso_date(compact_date_to_date(value))
    parsed = parse_iso_date(value)
    return to_iso_date(parsed)
