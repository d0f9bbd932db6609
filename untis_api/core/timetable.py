# untis_api/core/timetable.py
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import urlencode

from pydantic import ValidationError

from .constants import (ICON_EXAM, ICON_HOMEWORK, ROOM_SLOT, STATUS_ADDITIONAL,
                        STATUS_CANCELLED, SUBJECT_SLOT, TEACHER_SLOT,
                        TIMETABLE_ENTRIES_PATH, TIMETABLE_FORMAT,
                        TIMETABLE_RESOURCE_TYPE, TYPE_ADDITIONAL_PERIOD,
                        TYPE_EXAM)
from .date_utils import coerce_iso_date, parse_iso_date, parse_untis_datetime
from .errors import ConfigurationError
from .session import UntisSession
from ..models.models import LessonRecord, RawTimetable

log = logging.getLogger(__name__)


@dataclass
class FlattenStats:
    """Counters collected while flattening one timetable response."""
    days: int = 0
    entries: int = 0
    lessons: int = 0
    skipped_cancelled: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


async def fetch_timetable_raw(
    session: UntisSession,
    start_date: Union[date, str],
    end_date: Union[date, str],
    resource_id: Optional[Union[int, str]] = None,
) -> Optional[RawTimetable]:
    """
    Fetches the raw grid-entry timetable for a student resource.

    Args:
        session: An authenticated session.
        start_date: First day, as a date or "YYYY-MM-DD".
        end_date: Last day, as a date or "YYYY-MM-DD".
        resource_id: Student resource id; defaults to the configured one.

    Returns:
        The raw timetable, or None if it contains no days.

    Raises:
        ConfigurationError: If no resource id is available (no I/O happens).
        NotAuthenticatedError: If the session is not authenticated.
        UntisHttpError: On a non-2xx response.
    """
    resource_id = resource_id if resource_id not in (None, "") else session.config.resource_id
    if resource_id in (None, ""):
        raise ConfigurationError(
            "A timetable resource id is required: pass resource_id or set resource_id in the configuration."
        )
    session.require_authenticated()

    query = urlencode({
        "start": coerce_iso_date(start_date),
        "end": coerce_iso_date(end_date),
        "format": TIMETABLE_FORMAT,
        "resourceType": TIMETABLE_RESOURCE_TYPE,
        "resources": resource_id,
    })
    url = f"{session.server_url}{TIMETABLE_ENTRIES_PATH}?{query}"

    data = await session.get_json(url, kind="timetable")
    if not isinstance(data, dict) or not data.get("days"):
        log.info("Timetable response contained no days.")
        return None

    raw = RawTimetable.model_validate(data)
    if not raw.days:
        return None
    log.debug(f"Fetched timetable with {len(raw.days)} days.")
    return raw


def slot_names(entry: Dict[str, Any], slot_key: str, fallback: str) -> Tuple[str, str]:
    """
    Reads (short, long) names from a positional slot such as ``position1``.

    A slot is a list whose first element holds the current value under
    ``current``. Missing short names become ``fallback``, long names "".
    """
    slot = entry.get(slot_key)
    current: Dict[str, Any] = {}
    if isinstance(slot, list) and slot and isinstance(slot[0], dict):
        candidate = slot[0].get("current")
        if isinstance(candidate, dict):
            current = candidate
    short_name = current.get("shortName") or fallback
    long_name = current.get("longName") or ""
    return str(short_name), str(long_name)


def _upper(value: Any) -> str:
    return str(value).upper() if value else ""


def is_cancelled_entry(entry: Dict[str, Any]) -> bool:
    return _upper(entry.get("status")) == STATUS_CANCELLED


def entry_icons(entry: Dict[str, Any]) -> set:
    icons = entry.get("icons") or []
    if isinstance(icons, str):
        icons = [icons]
    return {str(icon) for icon in icons if icon}


def entry_to_lesson(entry: Dict[str, Any], day_date: Optional[date], include_notes: bool = True) -> LessonRecord:
    """
    Builds a LessonRecord from one grid entry and the date of its day.

    Raises:
        TypeError, ValueError, ValidationError: If the entry is malformed.
    """
    if not isinstance(entry, dict):
        raise TypeError(f"grid entry is {type(entry).__name__}, expected object")

    duration = entry.get("duration") or {}
    if not isinstance(duration, dict):
        raise TypeError("grid entry duration is not an object")
    start_time = parse_untis_datetime(duration.get("start"))
    end_time = parse_untis_datetime(duration.get("end"))

    teacher, teacher_long = slot_names(entry, *TEACHER_SLOT)
    subject, subject_long = slot_names(entry, *SUBJECT_SLOT)
    room, room_long = slot_names(entry, *ROOM_SLOT)

    entry_type = _upper(entry.get("type"))
    status = _upper(entry.get("status"))
    icons = entry_icons(entry)
    upper_icons = {icon.upper() for icon in icons}

    ids = entry.get("ids")
    lesson_id = ids[0] if isinstance(ids, list) and ids else entry.get("id")

    if include_notes:
        notes = entry.get("notesAll") or ""
        lesson_info = entry.get("lessonInfo") or ""
        texts = entry.get("texts") or []
    else:
        notes, lesson_info, texts = "", "", []

    return LessonRecord(
        id=lesson_id,
        date=day_date or (start_time.date() if start_time else None),
        start_time=start_time,
        end_time=end_time,
        type=entry.get("type"),
        status=entry.get("status"),
        teacher=teacher,
        teacher_long=teacher_long,
        subject=subject,
        subject_long=subject_long,
        room=room,
        room_long=room_long,
        icons=icons,
        has_homework=ICON_HOMEWORK in upper_icons,
        is_exam=entry_type == TYPE_EXAM or ICON_EXAM in upper_icons,
        is_cancelled=status == STATUS_CANCELLED,
        is_additional=status == STATUS_ADDITIONAL or entry_type == TYPE_ADDITIONAL_PERIOD,
        notes=str(notes),
        lesson_info=str(lesson_info),
        texts=texts if isinstance(texts, list) else [texts],
        raw_entry=entry,
    )


def flatten_timetable(
    raw: Optional[Union[RawTimetable, Dict[str, Any]]],
    skip_cancelled: bool = False,
    include_notes: bool = True,
    stats: Optional[FlattenStats] = None,
) -> Optional[List[LessonRecord]]:
    """
    Flattens the per-day grid entries into one ordered list of lessons.

    A malformed day or entry is counted and logged, never raised, so one bad
    record cannot lose the rest of the range.

    Args:
        raw: The raw timetable (model or plain dict).
        skip_cancelled: Leave out cancelled entries.
        include_notes: Copy notes, lesson info and texts into the records.
        stats: Optional FlattenStats to fill in for the caller.

    Returns:
        The lesson records, or None if no lesson resulted.
    """
    stats = stats if stats is not None else FlattenStats()
    if raw is None:
        return None
    if isinstance(raw, dict):
        raw = RawTimetable.model_validate(raw)

    lessons: List[LessonRecord] = []
    for day_index, day in enumerate(raw.days):
        stats.days += 1
        if not isinstance(day, dict):
            log.warning(f"Day {day_index}: not an object, skipping.")
            continue

        try:
            day_date = parse_iso_date(day.get("date"))
        except ValueError:
            log.warning(f"Day {day_index}: unparseable date {day.get('date')!r}, using entry times.")
            day_date = None

        grid_entries = day.get("gridEntries")
        if not isinstance(grid_entries, list):
            log.debug(f"Day {day_index} ({day.get('date')}): no grid entries.")
            continue

        for entry_index, entry in enumerate(grid_entries):
            stats.entries += 1
            if skip_cancelled and isinstance(entry, dict) and is_cancelled_entry(entry):
                stats.skipped_cancelled += 1
                continue
            try:
                lessons.append(entry_to_lesson(entry, day_date, include_notes))
            except (TypeError, ValueError, KeyError, AttributeError, ValidationError) as entry_err:
                stats.failed += 1
                error_msg = f"Day {day.get('date')}, entry {entry_index}: {type(entry_err).__name__}: {entry_err}"
                stats.errors.append(error_msg)
                log.warning(f"Skipping malformed grid entry. {error_msg}")

    stats.lessons = len(lessons)
    log.info(
        f"Timetable flattened: days={stats.days}, entries={stats.entries}, lessons={stats.lessons}, "
        f"skipped_cancelled={stats.skipped_cancelled}, failed={stats.failed}"
    )
    if not lessons:
        return None
    return lessons
