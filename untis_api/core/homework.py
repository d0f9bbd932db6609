# untis_api/core/homework.py
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import urlencode

from .constants import (DEFAULT_HOMEWORK_DAYS, HOMEWORK_PATH, NO_DESCRIPTION,
                        UNKNOWN_SUBJECT)
from .date_utils import (coerce_compact_date, compact_date_to_date,
                         to_compact_date, to_display_date)
from .session import UntisSession
from ..models.models import HomeworkRecord, RawHomeworkPayload

log = logging.getLogger(__name__)

REPORT_RULE_WIDTH = 60
ITEM_RULE_WIDTH = 40


async def fetch_homework_raw(
    session: UntisSession,
    start_date: Union[date, str],
    end_date: Union[date, str],
) -> RawHomeworkPayload:
    """
    Fetches homeworks, lessons and teachers for a date range.

    Args:
        session: An authenticated session.
        start_date: First day, as a date or "YYYYMMDD".
        end_date: Last day, as a date or "YYYYMMDD".

    Raises:
        NotAuthenticatedError: If the session is not authenticated (no I/O happens).
        UntisHttpError: On a non-2xx response.
    """
    session.require_authenticated()
    query = urlencode({
        "startDate": coerce_compact_date(start_date),
        "endDate": coerce_compact_date(end_date),
    })
    url = f"{session.server_url}{HOMEWORK_PATH}?{query}"

    data = await session.get_json(url, kind="homework")
    # The endpoint wraps its payload in a "data" envelope on most servers
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        data = data["data"]
    if not isinstance(data, dict):
        log.warning(f"Unexpected homework payload type {type(data).__name__}, treating as empty.")
        data = {}

    payload = RawHomeworkPayload.model_validate(data)
    log.debug(
        f"Fetched {len(payload.homeworks)} homeworks, {len(payload.lessons)} lessons, "
        f"{len(payload.teachers)} teachers."
    )
    return payload


def build_lesson_subject_map(lessons: Iterable[Dict[str, Any]]) -> Dict[Any, str]:
    """Maps lesson id -> subject name for the lessons of one homework response."""
    subject_map: Dict[Any, str] = {}
    for lesson in lessons:
        lesson_id = lesson.get("id")
        if lesson_id is not None and lesson.get("subject"):
            subject_map[lesson_id] = lesson["subject"]
    return subject_map


def resolve_subject_name(homework: Dict[str, Any], subject_map: Dict[Any, str]) -> str:
    """Lesson lookup first, then the record's own subject, then the sentinel."""
    return subject_map.get(homework.get("lessonId")) or homework.get("subject") or UNKNOWN_SUBJECT


def _due_date_sort_key(record: HomeworkRecord) -> float:
    # Records without a usable due date go last
    return record.due_date if record.due_date is not None else float("inf")


def normalize_homework(payload: RawHomeworkPayload, only_incomplete: bool = True) -> List[HomeworkRecord]:
    """
    Enriches, filters and sorts the raw homework list.

    Records are validated before filtering so the completed flag is read the
    same way it is stored. The sort is stable, so records sharing a due date
    keep their upstream order.
    """
    subject_map = build_lesson_subject_map(payload.lessons)

    records = [
        HomeworkRecord.model_validate({**hw, "subjectName": resolve_subject_name(hw, subject_map)})
        for hw in payload.homeworks
    ]
    if only_incomplete:
        records = [record for record in records if not record.completed]
    return sorted(records, key=_due_date_sort_key)


def homework_window(
    days: int = DEFAULT_HOMEWORK_DAYS,
    exclude_today: bool = False,
    now: Optional[datetime] = None,
) -> Tuple[date, date]:
    """Returns (start, end) calendar dates for a look-ahead of ``days`` days."""
    today = (now or datetime.now()).date()
    start = today + timedelta(days=1) if exclude_today else today
    return start, start + timedelta(days=days)


async def list_homework(
    session: UntisSession,
    days: int = DEFAULT_HOMEWORK_DAYS,
    only_incomplete: bool = True,
    exclude_today: bool = False,
    now: Optional[datetime] = None,
) -> Optional[List[HomeworkRecord]]:
    """
    Lists homework due within the next ``days`` days.

    Args:
        session: An authenticated session.
        days: Look-ahead in days.
        only_incomplete: Drop completed homework.
        exclude_today: Start the window tomorrow instead of today.
        now: Reference time (defaults to the local current time).

    Returns:
        Records sorted by due date, or None when nothing matches.
    """
    start, end = homework_window(days, exclude_today, now)
    log.info(f"Listing homework from {to_compact_date(start)} to {to_compact_date(end)} (only_incomplete={only_incomplete}).")

    payload = await fetch_homework_raw(session, start, end)
    records = normalize_homework(payload, only_incomplete)
    if not records:
        log.info("No homework found for the requested window.")
        return None

    log.info(f"Found {len(records)} homework records.")
    return records


def format_homework_report(
    homework_list: Optional[List[HomeworkRecord]],
    days: int = DEFAULT_HOMEWORK_DAYS,
    only_incomplete: bool = True,
) -> str:
    """Renders a homework list as a plain-text report."""
    open_tag = "open " if only_incomplete else ""
    if not homework_list:
        return f"No {open_tag}homework found for the next {days} days."

    lines = [f"📚 HOMEWORK FOR NEXT {days} DAYS ({len(homework_list)} {open_tag}assignments)\n"]
    lines.append("=" * REPORT_RULE_WIDTH + "\n\n")

    for index, hw in enumerate(homework_list, start=1):
        status = "✅" if hw.completed else "📋"
        lines.append(f"{index}. {status} {hw.subject_name or UNKNOWN_SUBJECT}\n")
        lines.append(f"   📅 Due: {to_display_date(hw.due_date)}\n")
        lines.append(f"   📝 {hw.text or NO_DESCRIPTION}\n")
        lines.append("-" * ITEM_RULE_WIDTH + "\n")

    return "".join(lines)


def filter_upcoming_homework(
    homework_list: Optional[Iterable[HomeworkRecord]],
    hours_ahead: int,
    now: Optional[datetime] = None,
) -> List[HomeworkRecord]:
    """
    Keeps open homework whose due date (taken as local midnight) falls after
    ``now`` and no later than ``now + hours_ahead``.
    """
    now = now or datetime.now()
    horizon = now + timedelta(hours=hours_ahead)

    upcoming = []
    for hw in homework_list or []:
        if hw.completed or not hw.due_date:
            continue
        try:
            due = datetime.combine(compact_date_to_date(hw.due_date), datetime.min.time())
        except ValueError:
            log.debug(f"Ignoring homework {hw.id!r} with malformed due date {hw.due_date!r}")
            continue
        if now < due <= horizon:
            upcoming.append(hw)
    return upcoming
