from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import HomeworkRecord, LessonRecord


class HomeworkListResponse(BaseModel):
    """
    Response body for the homework listing endpoint.
    ``homework`` is null when nothing is due in the window.
    """
    days: int = Field(..., description="Look-ahead window in days.")
    only_incomplete: bool = Field(..., description="Whether completed homework was filtered out.")
    exclude_today: bool = Field(..., description="Whether the window started tomorrow.")
    count: int = Field(..., description="Number of returned homework records.")
    homework: Optional[List[HomeworkRecord]] = Field(None, description="Homework sorted by due date, or null.")


class HomeworkReportResponse(BaseModel):
    """Response body carrying the plain-text homework report."""
    report: str = Field(..., description="Multi-line report, or the 'No ... homework found' line.")
    empty: bool = Field(..., description="True when the report is the empty-case line.")


class UpcomingHomeworkResponse(BaseModel):
    hours_ahead: int
    homework: List[HomeworkRecord] = Field(default_factory=list)


class TimetableResponse(BaseModel):
    """
    Response body for the timetable endpoint.
    ``lessons`` is null when no lesson records resulted.
    """
    start_date: str = Field(..., description="First day of the window (YYYY-MM-DD).")
    end_date: str = Field(..., description="Last day of the window (YYYY-MM-DD).")
    count: int
    skipped_cancelled: int = Field(0, description="Cancelled entries left out.")
    failed_entries: int = Field(0, description="Grid entries that could not be processed.")
    lessons: Optional[List[LessonRecord]] = None


class SessionResetResponse(BaseModel):
    cleared: bool
    reset_at: datetime
