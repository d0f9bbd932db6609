# untis_api/models/models.py
import datetime
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel, Field, field_validator

from ..core.constants import UNKNOWN_ROOM, UNKNOWN_SUBJECT, UNKNOWN_TEACHER

UntisId = Union[int, str]


def _lenient_compact_date(v: Any) -> Optional[int]:
    """Upstream sends YYYYMMDD as int or str; anything else becomes None."""
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(str(v).strip())
    except ValueError:
        return None


class RawHomeworkPayload(BaseModel):
    """Loose schema of the homework-by-range response (after unwrapping ``data``)."""
    homeworks: List[Dict[str, Any]] = Field(default_factory=list)
    lessons: List[Dict[str, Any]] = Field(default_factory=list)
    teachers: List[Dict[str, Any]] = Field(default_factory=list)
    records: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("homeworks", "lessons", "teachers", "records", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        if v is None:
            return []
        # Drop anything that is not an object; the normalizer works on dicts only
        if isinstance(v, list):
            return [item for item in v if isinstance(item, dict)]
        return v

    class Config:
        extra = "allow"


class RawTimetable(BaseModel):
    """Loose schema of the timetable-entries response."""
    days: List[Any] = Field(default_factory=list)
    errors: List[Any] = Field(default_factory=list)

    @field_validator("days", "errors", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return [] if v is None else v

    class Config:
        extra = "allow"


class HomeworkRecord(BaseModel):
    id: Optional[UntisId] = None
    lesson_id: Optional[UntisId] = Field(None, alias="lessonId")
    due_date: Optional[int] = Field(None, alias="dueDate")
    date: Optional[int] = None
    text: str = ""
    completed: bool = False
    remark: Optional[str] = None
    attachments: List[Any] = Field(default_factory=list)
    subject_name: str = Field(UNKNOWN_SUBJECT, alias="subjectName")

    @field_validator("id", "lesson_id", mode="before")
    @classmethod
    def lenient_id(cls, v):
        if v is None or (isinstance(v, (int, str)) and not isinstance(v, bool)):
            return v
        return str(v)

    @field_validator("due_date", "date", mode="before")
    @classmethod
    def parse_compact_date(cls, v):
        return _lenient_compact_date(v)

    @field_validator("text", mode="before")
    @classmethod
    def text_as_str(cls, v):
        return "" if v is None else str(v)

    @field_validator("remark", mode="before")
    @classmethod
    def remark_as_str(cls, v):
        return None if v is None else str(v)

    @field_validator("completed", mode="before")
    @classmethod
    def lenient_completed(cls, v):
        # null upstream means not completed
        if v is None:
            return False
        if isinstance(v, str):
            return v.strip().lower() in ("true", "1", "yes")
        return bool(v)

    @field_validator("attachments", mode="before")
    @classmethod
    def attachments_as_list(cls, v):
        if v is None:
            return []
        return v if isinstance(v, list) else [v]

    @field_validator("subject_name", mode="before")
    @classmethod
    def subject_not_blank(cls, v):
        return str(v) if v else UNKNOWN_SUBJECT

    class Config:
        populate_by_name = True
        extra = "allow"  # keep the remaining upstream fields (subject, teacherId, ...)
        json_schema_extra = {
            "example": {
                "id": 101,
                "lessonId": 1,
                "dueDate": 20250110,
                "date": 20250107,
                "text": "Workbook p. 5, ex. 1-3",
                "completed": False,
                "remark": "",
                "attachments": [],
                "subjectName": "M",
            }
        }


class LessonRecord(BaseModel):
    id: Optional[UntisId] = None
    date: Optional[datetime.date] = None
    start_time: Optional[datetime.datetime] = Field(None, alias="startTime")
    end_time: Optional[datetime.datetime] = Field(None, alias="endTime")
    type: Optional[str] = None
    status: Optional[str] = None
    teacher: str = UNKNOWN_TEACHER
    teacher_long: str = Field("", alias="teacherLong")
    subject: str = UNKNOWN_SUBJECT
    subject_long: str = Field("", alias="subjectLong")
    room: str = UNKNOWN_ROOM
    room_long: str = Field("", alias="roomLong")
    icons: Set[str] = Field(default_factory=set)
    has_homework: bool = Field(False, alias="hasHomework")
    is_exam: bool = Field(False, alias="isExam")
    is_cancelled: bool = Field(False, alias="isCancelled")
    is_additional: bool = Field(False, alias="isAdditional")
    notes: str = ""
    lesson_info: str = Field("", alias="lessonInfo")
    texts: List[Any] = Field(default_factory=list)
    raw_entry: Dict[str, Any] = Field(default_factory=dict, alias="rawEntry")

    class Config:
        populate_by_name = True
        frozen = False
        json_schema_extra = {
            "example": {
                "id": 4711,
                "date": "2025-01-13",
                "startTime": "2025-01-13T08:00:00",
                "endTime": "2025-01-13T08:45:00",
                "type": "NORMAL_TEACHING_PERIOD",
                "status": "REGULAR",
                "teacher": "MUE",
                "teacherLong": "Müller",
                "subject": "M",
                "subjectLong": "Mathematik",
                "room": "A101",
                "roomLong": "Raum A101",
                "icons": ["HOMEWORK"],
                "hasHomework": True,
                "isExam": False,
                "isCancelled": False,
                "isAdditional": False,
                "notes": "",
                "lessonInfo": "",
                "texts": [],
                "rawEntry": {},
            }
        }
