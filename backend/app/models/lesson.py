# backend/app/models/lesson.py
"""
Lesson model for the scheduling core.

A lesson is a single scheduled meeting between a teacher and a student at
an absolute UTC instant. Lessons created together (fixed batches, or the
weeks generated for a recurring slot) share a ``recurring_id`` batch tag.
"""

from datetime import datetime, timedelta
from enum import Enum
import logging
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime, utc_now

logger = logging.getLogger(__name__)


class LessonStatus(str, Enum):
    """Lesson lifecycle statuses."""

    SCHEDULED = "SCHEDULED"  # Default on creation
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"  # Terminal; never reverts
    MISSED = "MISSED"


# Statuses that occupy the teacher's calendar
ACTIVE_LESSON_STATUSES = (
    LessonStatus.SCHEDULED.value,
    LessonStatus.COMPLETED.value,
    LessonStatus.MISSED.value,
)


class Lesson(Base):
    """
    A booked lesson.

    ``version`` starts at 1 and is bumped by every guarded update; see
    services.optimistic_lock.
    """

    __tablename__ = "lessons"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)

    teacher_id = Column(String(26), ForeignKey("teachers.id"), nullable=False)
    student_id = Column(String(26), ForeignKey("students.id"), nullable=False)

    start_at = Column(UTCDateTime(), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=LessonStatus.SCHEDULED.value, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    # Timezone the lesson was booked in, for display
    timezone = Column(String(64), nullable=False)

    # Batch membership
    recurring_id = Column(String(64), nullable=True, index=True)
    recurring_slot_id = Column(
        String(26), ForeignKey("recurring_slots.id", ondelete="SET NULL"), nullable=True
    )
    is_recurring = Column(Boolean, nullable=False, default=False)

    notes = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime(), nullable=True, onupdate=utc_now)
    cancelled_at = Column(UTCDateTime(), nullable=True)

    teacher = relationship("Teacher")
    student = relationship("Student")
    recurring_slot = relationship("RecurringSlot", back_populates="lessons")

    __table_args__ = (
        CheckConstraint("duration_minutes IN (30, 60)", name="ck_lessons_duration"),
        CheckConstraint(
            "status IN ('SCHEDULED', 'COMPLETED', 'CANCELLED', 'MISSED')",
            name="ck_lessons_status",
        ),
        CheckConstraint("version >= 1", name="ck_lessons_version"),
        Index("ix_lessons_teacher_start", "teacher_id", "start_at"),
        Index("ix_lessons_student_start", "student_id", "start_at"),
        # Last line of defence against double booking: one non-cancelled
        # lesson per teacher and start instant.
        Index(
            "uq_lessons_teacher_start_active",
            "teacher_id",
            "start_at",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
    )

    @property
    def end_at(self) -> datetime:
        return self.start_at + timedelta(minutes=self.duration_minutes)

    @property
    def is_cancelled(self) -> bool:
        return self.status == LessonStatus.CANCELLED.value

    def __repr__(self) -> str:
        return (
            f"<Lesson {self.id} teacher={self.teacher_id} "
            f"start={self.start_at.isoformat() if self.start_at else None} status={self.status}>"
        )

    def to_dict(self, display_timezone: Optional[str] = None) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        start_at = self.start_at
        end_at = self.end_at
        if display_timezone:
            from ..core.timezone_utils import to_timezone

            start_at = to_timezone(start_at, display_timezone)
            end_at = to_timezone(end_at, display_timezone)
        return {
            "id": self.id,
            "teacher_id": self.teacher_id,
            "student_id": self.student_id,
            "start_at": start_at.isoformat(),
            "end_at": end_at.isoformat(),
            "duration_minutes": self.duration_minutes,
            "status": self.status,
            "price": str(self.price),
            "timezone": self.timezone,
            "recurring_id": self.recurring_id,
            "recurring_slot_id": self.recurring_slot_id,
            "is_recurring": self.is_recurring,
            "notes": self.notes,
            "version": self.version,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }
