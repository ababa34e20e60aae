# backend/app/models/lesson_settings.py
"""Per-teacher booking configuration: durations, prices and booking horizon."""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime, utc_now


class LessonSettings(Base):
    """One row per teacher; required before any booking can be made."""

    __tablename__ = "lesson_settings"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    teacher_id = Column(
        String(26), ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    allows_30_min = Column(Boolean, nullable=False, default=True)
    allows_60_min = Column(Boolean, nullable=False, default=True)
    price_30_min = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    price_60_min = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    advance_booking_days = Column(Integer, nullable=False, default=21)
    updated_at = Column(UTCDateTime(), nullable=False, default=utc_now, onupdate=utc_now)

    teacher = relationship("Teacher", back_populates="lesson_settings")

    __table_args__ = (
        CheckConstraint("advance_booking_days > 0", name="ck_lesson_settings_advance_days"),
        CheckConstraint("price_30_min >= 0 AND price_60_min >= 0", name="ck_lesson_settings_prices"),
    )

    def allows_duration(self, duration: int) -> bool:
        if duration == 30:
            return bool(self.allows_30_min)
        if duration == 60:
            return bool(self.allows_60_min)
        return False

    def price_for(self, duration: int) -> Optional[Decimal]:
        """Per-lesson price for ``duration`` minutes, or None when not offered."""
        if not self.allows_duration(duration):
            return None
        return Decimal(self.price_30_min if duration == 30 else self.price_60_min)

    @property
    def enabled_durations(self) -> List[int]:
        return [duration for duration in (30, 60) if self.allows_duration(duration)]
