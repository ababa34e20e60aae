# backend/app/models/recurring_slot.py
"""
Recurring slot model: an open-ended weekly subscription.

The slot owns a day of week and a wall-clock start time in the teacher's
timezone. Concrete lessons are materialized ahead of time and backfilled
by RecurringSlotManager.generate_missing_lessons.
"""

from enum import Enum
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    text,
)
from sqlalchemy.orm import relationship

from ..core.constants import DAYS_OF_WEEK
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime, utc_now


class RecurringSlotStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class RecurringSlot(Base):
    """Weekly lesson subscription between a teacher and a student."""

    __tablename__ = "recurring_slots"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    teacher_id = Column(String(26), ForeignKey("teachers.id"), nullable=False)
    student_id = Column(String(26), ForeignKey("students.id"), nullable=False)

    day_of_week = Column(SmallInteger, nullable=False)
    start_time = Column(String(5), nullable=False)
    duration_minutes = Column(Integer, nullable=False)

    per_lesson_price = Column(Numeric(10, 2), nullable=False)
    monthly_rate = Column(Numeric(10, 2), nullable=False)

    status = Column(String(20), nullable=False, default=RecurringSlotStatus.ACTIVE.value)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime(), nullable=True, onupdate=utc_now)
    cancelled_at = Column(UTCDateTime(), nullable=True)

    teacher = relationship("Teacher")
    student = relationship("Student")
    lessons = relationship("Lesson", back_populates="recurring_slot", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_recurring_slots_day_of_week"),
        CheckConstraint("duration_minutes IN (30, 60)", name="ck_recurring_slots_duration"),
        CheckConstraint("status IN ('ACTIVE', 'CANCELLED')", name="ck_recurring_slots_status"),
        Index("ix_recurring_slots_teacher_status", "teacher_id", "status"),
        Index("ix_recurring_slots_student", "student_id"),
        Index(
            "uq_recurring_slots_active_start",
            "teacher_id",
            "day_of_week",
            "start_time",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status == RecurringSlotStatus.ACTIVE.value

    @property
    def day_name(self) -> str:
        return DAYS_OF_WEEK[self.day_of_week]

    def __repr__(self) -> str:
        return f"<RecurringSlot {self.id} {self.day_name} {self.start_time} status={self.status}>"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "teacher_id": self.teacher_id,
            "student_id": self.student_id,
            "day_of_week": self.day_of_week,
            "day_name": self.day_name,
            "start_time": self.start_time,
            "duration_minutes": self.duration_minutes,
            "per_lesson_price": str(self.per_lesson_price),
            "monthly_rate": str(self.monthly_rate),
            "status": self.status,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }
