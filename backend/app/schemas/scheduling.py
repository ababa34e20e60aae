# backend/app/schemas/scheduling.py
"""
Scheduling schemas for the lesson booking API.

Request DTOs forbid unknown fields. Response DTOs are built from the
models' ``to_dict`` output, so datetimes arrive as ISO strings and prices
as decimal strings.
"""

from datetime import date, datetime
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, Field, field_validator

from ..core.constants import LESSON_DURATIONS
from ..core.exceptions import ValidationException
from ..core.timezone_utils import parse_wall_clock
from .base import Money, StandardizedModel, StrictRequestModel


def _check_duration(value: int) -> int:
    if value not in LESSON_DURATIONS:
        allowed = ", ".join(str(d) for d in LESSON_DURATIONS)
        raise ValueError(f"Duration must be one of: {allowed}")
    return value


LessonDuration = Annotated[int, AfterValidator(_check_duration)]


# Requests


class BookLessonRequest(StrictRequestModel):
    """
    Book one lesson, or a fixed weekly batch when ``recurring_weeks`` is set.

    A naive ``start_at`` is read in ``timezone`` (or the teacher's timezone).
    """

    teacher_id: str = Field(..., description="Teacher to book")
    student_id: str = Field(..., description="Student the lesson is for")
    start_at: datetime = Field(..., description="Lesson start")
    duration: LessonDuration = Field(..., description="Lesson length in minutes")
    timezone: Optional[str] = Field(None, description="Requester's IANA timezone")
    recurring_weeks: Optional[int] = Field(
        None,
        description="Book the same slot for this many consecutive weeks",
    )


class CancelLessonRequest(StrictRequestModel):
    reason: Optional[str] = Field(None, max_length=500)
    expected_version: Optional[int] = Field(None, ge=1)


class CreateRecurringSlotRequest(StrictRequestModel):
    """Start an indefinite weekly subscription."""

    teacher_id: str
    student_id: str
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Sunday ... 6 = Saturday")
    start_time: str = Field(..., description="HH:MM in the teacher's timezone")
    duration: LessonDuration
    timezone: Optional[str] = None
    starting_from: Optional[date] = None

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, value: str) -> str:
        try:
            parse_wall_clock(value)
        except ValidationException as exc:
            raise ValueError(exc.message) from exc
        return value


class CancelRecurringSlotRequest(StrictRequestModel):
    expected_version: Optional[int] = Field(None, ge=1)


# Responses


class TimeSlotResponse(StandardizedModel):
    start: datetime
    end: datetime
    duration: int
    price: Money
    available: bool


class AvailableSlotsResponse(StandardizedModel):
    teacher_id: str
    start_date: date
    end_date: date
    timezone: Optional[str] = None
    slots: List[TimeSlotResponse]


class LessonResponse(StandardizedModel):
    id: str
    teacher_id: str
    student_id: str
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    status: Literal["SCHEDULED", "COMPLETED", "CANCELLED", "MISSED"]
    price: Money
    timezone: str
    recurring_id: Optional[str] = None
    recurring_slot_id: Optional[str] = None
    is_recurring: bool
    notes: Optional[str] = None
    version: int
    cancelled_at: Optional[datetime] = None


class BookLessonResponse(StandardizedModel):
    lessons: List[LessonResponse]
    recurring_id: Optional[str] = None


class ScheduleResponse(StandardizedModel):
    teacher_id: str
    start_date: date
    end_date: date
    lessons: List[LessonResponse]


class RecurringSlotResponse(StandardizedModel):
    id: str
    teacher_id: str
    student_id: str
    day_of_week: int
    day_name: str
    start_time: str
    duration_minutes: int
    per_lesson_price: Money
    monthly_rate: Money
    status: Literal["ACTIVE", "CANCELLED"]
    version: int
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class CreateRecurringSlotResponse(StandardizedModel):
    slot: RecurringSlotResponse
    lessons: List[LessonResponse]


class DatabaseHealthResponse(StandardizedModel):
    status: Literal["healthy", "unhealthy"]
    healthy: bool
    response_time_ms: float
    error: Optional[str] = None
