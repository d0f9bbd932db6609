# untis_api/core/service.py
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Union

from .constants import (DEFAULT_HOMEWORK_DAYS, DEFAULT_TIMETABLE_DAYS,
                        DEFAULT_UPCOMING_HOURS)
from .homework import (fetch_homework_raw, filter_upcoming_homework,
                       format_homework_report, list_homework,
                       normalize_homework)
from .session import UntisSession
from .timetable import FlattenStats, fetch_timetable_raw, flatten_timetable
from ..models.models import HomeworkRecord, LessonRecord

log = logging.getLogger(__name__)


@dataclass
class TimetableResult:
    """Lessons for a window plus the counters collected while flattening."""
    lessons: Optional[List[LessonRecord]] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    stats: FlattenStats = field(default_factory=FlattenStats)


async def get_formatted_homework(
    session: UntisSession,
    days: int = DEFAULT_HOMEWORK_DAYS,
    only_incomplete: bool = True,
    exclude_today: bool = False,
    now: Optional[datetime] = None,
) -> str:
    """Lists homework for the next ``days`` days and renders the text report."""
    homework_list = await list_homework(
        session, days=days, only_incomplete=only_incomplete, exclude_today=exclude_today, now=now
    )
    return format_homework_report(homework_list, days, only_incomplete)


async def fetch_todays_homework(
    session: UntisSession,
    only_incomplete: bool = False,
    now: Optional[datetime] = None,
) -> List[HomeworkRecord]:
    """All homework records returned for today's date."""
    today = (now or datetime.now()).date()
    payload = await fetch_homework_raw(session, today, today)
    return normalize_homework(payload, only_incomplete)


async def fetch_week_homework(
    session: UntisSession,
    only_incomplete: bool = False,
    now: Optional[datetime] = None,
) -> List[HomeworkRecord]:
    """Homework for the current week, Sunday through Saturday."""
    today = (now or datetime.now()).date()
    start_of_week = today - timedelta(days=(today.weekday() + 1) % 7)
    end_of_week = start_of_week + timedelta(days=6)
    payload = await fetch_homework_raw(session, start_of_week, end_of_week)
    return normalize_homework(payload, only_incomplete)


async def check_upcoming_homework(
    session: UntisSession,
    hours_ahead: int = DEFAULT_UPCOMING_HOURS,
    now: Optional[datetime] = None,
) -> List[HomeworkRecord]:
    """
    Open homework due within the next ``hours_ahead`` hours.

    Used by notification integrations; an empty list means nothing to send.
    """
    now = now or datetime.now()
    future = now + timedelta(hours=hours_ahead)
    payload = await fetch_homework_raw(session, now.date(), future.date())
    upcoming = filter_upcoming_homework(normalize_homework(payload, only_incomplete=True), hours_ahead, now)
    log.info(f"Found {len(upcoming)} open homework records due within {hours_ahead} hours.")
    return upcoming


async def get_timetable_lessons(
    session: UntisSession,
    days: int = DEFAULT_TIMETABLE_DAYS,
    skip_cancelled: bool = False,
    include_notes: bool = True,
    resource_id: Optional[Union[int, str]] = None,
    now: Optional[datetime] = None,
) -> TimetableResult:
    """
    Fetches and flattens the timetable from today to today + ``days``.

    Returns:
        A TimetableResult; ``lessons`` is None when there is nothing scheduled.
    """
    start = (now or datetime.now()).date()
    end = start + timedelta(days=days)
    result = TimetableResult(start_date=start.isoformat(), end_date=end.isoformat())

    raw = await fetch_timetable_raw(session, start, end, resource_id)
    if raw is None:
        log.info(f"No timetable data between {result.start_date} and {result.end_date}.")
        return result

    result.lessons = flatten_timetable(
        raw, skip_cancelled=skip_cancelled, include_notes=include_notes, stats=result.stats
    )
    if result.stats.failed:
        log.warning(f"{result.stats.failed} grid entries could not be processed.")
    return result
