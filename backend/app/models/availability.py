# backend/app/models/availability.py
"""
Availability models for the scheduling core.

Classes:
    AvailabilityWindow: Recurring weekly open interval (teacher-local wall clock)
    BlockedTime: One-off absolute interval during which the teacher is unavailable
"""

import logging

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    SmallInteger,
    String,
)
from sqlalchemy.orm import relationship

from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime, utc_now

logger = logging.getLogger(__name__)


class AvailabilityWindow(Base):
    """
    Weekly recurring availability.

    ``day_of_week`` is Sunday-first (0 = Sunday). ``start_time`` and
    ``end_time`` are ``HH:MM`` strings in the teacher's timezone. Windows of
    the same teacher and day never overlap (enforced by AvailabilityService).
    """

    __tablename__ = "availability_windows"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    teacher_id = Column(String(26), ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(SmallInteger, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)

    teacher = relationship("Teacher", back_populates="availability_windows")

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_day_of_week"),
        CheckConstraint("start_time < end_time", name="ck_availability_time_order"),
        Index("ix_availability_teacher_day", "teacher_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        return f"<AvailabilityWindow {self.day_of_week} {self.start_time}-{self.end_time}>"


class BlockedTime(Base):
    """One-off unavailability, stored as absolute UTC instants."""

    __tablename__ = "blocked_times"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    teacher_id = Column(String(26), ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)
    start_at = Column(UTCDateTime(), nullable=False)
    end_at = Column(UTCDateTime(), nullable=False)
    reason = Column(String(255), nullable=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)

    teacher = relationship("Teacher", back_populates="blocked_times")

    __table_args__ = (
        CheckConstraint("start_at < end_at", name="ck_blocked_time_order"),
        Index("ix_blocked_times_teacher_start", "teacher_id", "start_at"),
    )

    def __repr__(self) -> str:
        return f"<BlockedTime {self.start_at.isoformat()}-{self.end_at.isoformat()}>"
