# backend/app/schemas/__init__.py
"""
Pydantic schemas for the lesson scheduling API.

Request models reject unknown fields; response models are built from the
models' ``to_dict`` output.
"""

from .base import Money, StandardizedModel, StrictRequestModel
from .scheduling import (
    AvailableSlotsResponse,
    BookLessonRequest,
    BookLessonResponse,
    CancelLessonRequest,
    CancelRecurringSlotRequest,
    CreateRecurringSlotRequest,
    CreateRecurringSlotResponse,
    DatabaseHealthResponse,
    LessonResponse,
    RecurringSlotResponse,
    ScheduleResponse,
    TimeSlotResponse,
)

__all__ = [
    # Base
    "Money",
    "StandardizedModel",
    "StrictRequestModel",
    # Requests
    "BookLessonRequest",
    "CancelLessonRequest",
    "CreateRecurringSlotRequest",
    "CancelRecurringSlotRequest",
    # Responses
    "TimeSlotResponse",
    "AvailableSlotsResponse",
    "LessonResponse",
    "BookLessonResponse",
    "ScheduleResponse",
    "RecurringSlotResponse",
    "CreateRecurringSlotResponse",
    "DatabaseHealthResponse",
]
