# backend/app/services/slot_generator.py
"""
Slot Generator Service for the scheduling core

Expands a teacher's weekly availability windows into concrete bookable
candidates for a date range. Windows are wall-clock times in the teacher's
timezone and are localized per calendar day, so a 09:00 window stays at
09:00 local across DST changes.

Generation is read-only: it never writes and gives the same answer for the
same inputs, current bookings and clock.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
import logging
from typing import Any, Dict, List, Optional

import pytz
from sqlalchemy.orm import Session

from ..core.constants import SLOT_INCREMENT_MINUTES
from ..core.exceptions import NotFoundException, ValidationException
from ..core.timezone_utils import (
    Clock,
    day_of_week,
    get_timezone,
    iter_dates,
    local_day_bounds,
    localize_existing,
    parse_wall_clock,
)
from ..models.availability import AvailabilityWindow
from ..repositories import RepositoryFactory
from .base import BaseService
from .conflict_checker import ConflictChecker, overlaps_any

logger = logging.getLogger(__name__)

# Guards against accidental year-long scans from the API
MAX_SLOT_RANGE_DAYS = 92


@dataclass(frozen=True)
class TimeSlot:
    """A candidate lesson interval. ``start``/``end`` carry the display timezone."""

    start: datetime
    end: datetime
    duration: int
    price: Decimal
    available: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "duration": self.duration,
            "price": str(self.price),
            "available": self.available,
        }


class SlotGenerator(BaseService):
    """Computes slot candidates from availability, blocked times and lessons."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        conflict_checker: Optional[ConflictChecker] = None,
    ):
        super().__init__(db, clock)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.availability_repository = RepositoryFactory.create_availability_repository(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db)

    @BaseService.measure_operation("get_available_slots")
    def get_available_slots(
        self,
        teacher_id: str,
        start_date: date,
        end_date: date,
        target_timezone: Optional[str] = None,
    ) -> List[TimeSlot]:
        """
        Slot candidates for every local calendar day in [start_date, end_date].

        Args:
            teacher_id: Teacher whose calendar is expanded
            start_date: First local date, in the teacher's timezone
            end_date: Last local date (inclusive)
            target_timezone: Timezone used to express ``start``/``end`` in the
                result; defaults to the teacher's timezone

        Returns:
            Ordered candidates; empty when the teacher has no lesson settings

        Raises:
            NotFoundException: Unknown teacher
            ValidationException: Inverted or oversized range, unknown timezone
        """
        if end_date < start_date:
            raise ValidationException(
                "End date must not be before start date",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        if (end_date - start_date).days >= MAX_SLOT_RANGE_DAYS:
            raise ValidationException(
                f"Date range cannot exceed {MAX_SLOT_RANGE_DAYS} days",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )

        teacher = self.teacher_repository.get_by_id(teacher_id)
        if teacher is None:
            raise NotFoundException("Teacher not found", details={"teacher_id": teacher_id})

        settings = self.teacher_repository.get_lesson_settings(teacher_id)
        if settings is None:
            self.logger.debug(f"Teacher {teacher_id} has no lesson settings; no slots")
            return []

        teacher_tz = get_timezone(teacher.timezone)
        display_tz = get_timezone(target_timezone) if target_timezone else teacher_tz
        durations = settings.enabled_durations

        windows_by_day: Dict[int, List[AvailabilityWindow]] = defaultdict(list)
        for window in self.availability_repository.get_weekly_windows(teacher_id):
            windows_by_day[window.day_of_week].append(window)

        range_start, range_end = local_day_bounds(start_date, end_date, teacher_tz)
        blocked, booked = self.conflict_checker.get_busy_intervals(teacher_id, range_start, range_end)
        now = self.now()

        slots: List[TimeSlot] = []
        step = timedelta(minutes=SLOT_INCREMENT_MINUTES)
        for day in iter_dates(start_date, end_date):
            for window in windows_by_day.get(day_of_week(day), []):
                cursor = datetime.combine(day, parse_wall_clock(window.start_time))
                window_end = datetime.combine(day, parse_wall_clock(window.end_time))

                while cursor < window_end:
                    local_start = localize_existing(cursor, teacher_tz)
                    if local_start is None:
                        # Local time skipped by spring-forward
                        cursor += step
                        continue
                    start_utc = local_start.astimezone(pytz.UTC)
                    for duration in durations:
                        if cursor + timedelta(minutes=duration) > window_end:
                            continue
                        end_utc = start_utc + timedelta(minutes=duration)
                        available = (
                            start_utc >= now
                            and not overlaps_any(start_utc, end_utc, blocked)
                            and not overlaps_any(start_utc, end_utc, booked)
                        )
                        slots.append(
                            TimeSlot(
                                start=start_utc.astimezone(display_tz),
                                end=end_utc.astimezone(display_tz),
                                duration=duration,
                                price=settings.price_for(duration),
                                available=available,
                            )
                        )
                    cursor += step

        return slots

    def is_slot_available(
        self, teacher_id: str, start_at: datetime, duration: int
    ) -> bool:
        """
        Whether ``start_at``/``duration`` appears as an available candidate.

        Scans only the local day(s) the requested interval touches.
        """
        teacher = self.teacher_repository.get_by_id(teacher_id)
        if teacher is None:
            raise NotFoundException("Teacher not found", details={"teacher_id": teacher_id})
        teacher_tz = get_timezone(teacher.timezone)
        first_day = start_at.astimezone(teacher_tz).date()
        last_day = (start_at + timedelta(minutes=duration)).astimezone(teacher_tz).date()

        return any(
            slot.available and slot.duration == duration and slot.start == start_at
            for slot in self.get_available_slots(teacher_id, first_day, last_day)
        )
