"""
Database models for the scheduling core.

This module exports all SQLAlchemy models used in the application.
The models are organized by functionality:
- Teachers and their assigned students
- Weekly availability windows and blocked times
- Lesson settings (durations, prices, booking horizon)
- Lessons and indefinite recurring slots
"""

from .availability import AvailabilityWindow, BlockedTime
from .lesson import ACTIVE_LESSON_STATUSES, Lesson, LessonStatus
from .lesson_settings import LessonSettings
from .recurring_slot import RecurringSlot, RecurringSlotStatus
from .teacher import Student, Teacher

__all__ = [
    # People
    "Teacher",
    "Student",
    # Availability
    "AvailabilityWindow",
    "BlockedTime",
    "LessonSettings",
    # Lessons
    "Lesson",
    "LessonStatus",
    "ACTIVE_LESSON_STATUSES",
    "RecurringSlot",
    "RecurringSlotStatus",
]
