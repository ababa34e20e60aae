# backend/app/services/availability_service.py
"""
Availability Service for the scheduling core

Teacher-side maintenance of the data slot generation reads:
- Weekly availability windows (replaced as a whole)
- One-off blocked times
- Lesson settings (durations, prices, booking horizon)

Every write is validated first and then runs as a single unit of work.
"""

from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.constants import DAYS_OF_WEEK, MAX_ADVANCE_BOOKING_DAYS, MIN_ADVANCE_BOOKING_DAYS
from ..core.exceptions import NotFoundException, ValidationException
from ..core.timezone_utils import Clock, ensure_utc, format_wall_clock, parse_wall_clock
from ..models.availability import AvailabilityWindow, BlockedTime
from ..models.lesson_settings import LessonSettings
from ..models.teacher import Teacher
from ..repositories import RepositoryFactory
from .base import BaseService
from .conflict_checker import ConflictChecker, intervals_overlap
from .transaction_coordinator import TransactionCoordinator, TransactionPolicies

logger = logging.getLogger(__name__)


class AvailabilityService(BaseService):
    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        coordinator: Optional[TransactionCoordinator] = None,
    ):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_availability_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.conflict_checker = ConflictChecker(db, availability_repository=self.repository)
        self.coordinator = coordinator or TransactionCoordinator(db, clock=self.clock)

    # Weekly windows

    def get_weekly_availability(self, teacher_id: str) -> List[AvailabilityWindow]:
        self._get_teacher(teacher_id)
        return self.repository.get_weekly_windows(teacher_id)

    @BaseService.measure_operation("replace_weekly_availability")
    def replace_weekly_availability(
        self, teacher_id: str, windows: Sequence[Dict[str, Any]]
    ) -> List[AvailabilityWindow]:
        """
        Replace every weekly window of a teacher.

        Args:
            teacher_id: Teacher whose week is replaced
            windows: Dicts with ``day_of_week``, ``start_time`` and ``end_time``

        Raises:
            ValidationException: Bad day, bad ``HH:MM`` value, inverted
                window, or two windows overlapping on the same day
        """
        self._get_teacher(teacher_id)
        normalized = self.validate_windows(windows)
        self.log_operation(
            "replace_weekly_availability", teacher_id=teacher_id, window_count=len(normalized)
        )
        return self.coordinator.execute(
            lambda: self.repository.replace_weekly_windows(teacher_id, normalized),
            TransactionPolicies.DEFAULT,
            "replace_weekly_availability",
        )

    @staticmethod
    def validate_windows(windows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Check and normalize windows; returns ``HH:MM``-formatted copies."""
        parsed = []
        for window in windows:
            day = window.get("day_of_week")
            if not isinstance(day, int) or not 0 <= day <= 6:
                raise ValidationException(
                    "Day of week must be between 0 (Sunday) and 6 (Saturday)",
                    details={"day_of_week": day},
                )
            start = parse_wall_clock(window.get("start_time"))
            end = parse_wall_clock(window.get("end_time"))
            if start >= end:
                raise ValidationException(
                    f"End time must be after start time on {DAYS_OF_WEEK[day]}",
                    details={"day_of_week": day},
                )
            parsed.append((day, start, end))

        for index, (day, start, end) in enumerate(parsed):
            for other_day, other_start, other_end in parsed[index + 1 :]:
                if day == other_day and intervals_overlap(start, end, other_start, other_end):
                    raise ValidationException(
                        f"Overlapping time slots on {DAYS_OF_WEEK[day]}",
                        details={"day_of_week": day},
                    )

        return [
            {
                "day_of_week": day,
                "start_time": format_wall_clock(start),
                "end_time": format_wall_clock(end),
                "is_active": True,
            }
            for day, start, end in parsed
        ]

    # Blocked times

    @BaseService.measure_operation("add_blocked_time")
    def add_blocked_time(
        self,
        teacher_id: str,
        start_at: datetime,
        end_at: datetime,
        reason: Optional[str] = None,
    ) -> BlockedTime:
        """
        Block an absolute interval.

        Naive datetimes are read in the teacher's timezone.

        Raises:
            ValidationException: Inverted interval, start in the past, or a
                SCHEDULED lesson inside the interval
        """
        teacher = self._get_teacher(teacher_id)
        start_at = ensure_utc(start_at, teacher.timezone)
        end_at = ensure_utc(end_at, teacher.timezone)
        details = {
            "teacher_id": teacher_id,
            "start_at": start_at.isoformat(),
            "end_at": end_at.isoformat(),
        }

        if start_at >= end_at:
            raise ValidationException("End time must be after start time", details=details)
        if start_at < self.now():
            raise ValidationException("Cannot block time in the past", details=details)

        def unit() -> BlockedTime:
            scheduled = self.conflict_checker.check_scheduling_conflicts(teacher_id, start_at, end_at)
            if scheduled["scheduled_lessons"]:
                raise ValidationException(
                    f"Cannot block time: {scheduled['scheduled_lessons']} lesson(s) "
                    "already scheduled during this period",
                    details=details,
                )
            return self.repository.create_blocked_time(
                teacher_id=teacher_id, start_at=start_at, end_at=end_at, reason=reason
            )

        self.log_operation("add_blocked_time", **details)
        return self.coordinator.execute(unit, TransactionPolicies.DEFAULT, "add_blocked_time")

    def remove_blocked_time(self, teacher_id: str, blocked_time_id: str) -> None:
        def unit() -> None:
            blocked = self.repository.get_blocked_time(blocked_time_id)
            if blocked is None or blocked.teacher_id != teacher_id:
                raise NotFoundException(
                    "Blocked time not found", details={"blocked_time_id": blocked_time_id}
                )
            self.repository.delete_blocked_time(blocked)

        self.log_operation("remove_blocked_time", teacher_id=teacher_id, blocked_time_id=blocked_time_id)
        self.coordinator.execute(unit, TransactionPolicies.DEFAULT, "remove_blocked_time")

    # Lesson settings

    @BaseService.measure_operation("save_lesson_settings")
    def save_lesson_settings(
        self,
        teacher_id: str,
        *,
        allows_30_min: bool,
        allows_60_min: bool,
        price_30_min: Decimal,
        price_60_min: Decimal,
        advance_booking_days: int,
    ) -> LessonSettings:
        """
        Create or update the teacher's lesson settings.

        Raises:
            ValidationException: No duration enabled, a non-positive price for
                an enabled duration, or a horizon outside 1..90 days
        """
        self._get_teacher(teacher_id)
        price_30_min = Decimal(price_30_min)
        price_60_min = Decimal(price_60_min)

        if not allows_30_min and not allows_60_min:
            raise ValidationException("At least one lesson duration must be enabled")
        if allows_30_min and price_30_min <= 0:
            raise ValidationException("30-minute lesson price must be greater than 0")
        if allows_60_min and price_60_min <= 0:
            raise ValidationException("60-minute lesson price must be greater than 0")
        if not MIN_ADVANCE_BOOKING_DAYS <= advance_booking_days <= MAX_ADVANCE_BOOKING_DAYS:
            raise ValidationException(
                f"Advance booking must be between {MIN_ADVANCE_BOOKING_DAYS} "
                f"and {MAX_ADVANCE_BOOKING_DAYS} days",
                details={"advance_booking_days": advance_booking_days},
            )

        self.log_operation("save_lesson_settings", teacher_id=teacher_id)
        return self.coordinator.execute(
            lambda: self.teacher_repository.upsert_lesson_settings(
                teacher_id,
                allows_30_min=allows_30_min,
                allows_60_min=allows_60_min,
                price_30_min=price_30_min,
                price_60_min=price_60_min,
                advance_booking_days=advance_booking_days,
            ),
            TransactionPolicies.DEFAULT,
            "save_lesson_settings",
        )

    def _get_teacher(self, teacher_id: str) -> Teacher:
        teacher = self.teacher_repository.get_by_id(teacher_id)
        if teacher is None:
            raise NotFoundException("Teacher not found", details={"teacher_id": teacher_id})
        return teacher
