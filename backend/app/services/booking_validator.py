# backend/app/services/booking_validator.py
"""
Booking Validator Service for the scheduling core

Enforces the booking rules in a fixed order, stopping at the first failure:

1. The teacher exists and has lesson settings
2. The student is assigned to the teacher
3. The requested duration is offered
4. The start is within the advance-booking horizon (skipped for recurring
   continuations)
5. The start is not in the past
6. The exact slot is currently offered as available; a slot held by another
   lesson is reported as a booking conflict rather than a validation error
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import BookingConflictException, NotFoundException, ValidationException
from ..core.timezone_utils import Clock, ensure_utc, get_timezone
from ..repositories import RepositoryFactory
from .base import BaseService
from .slot_generator import SlotGenerator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidatedBooking:
    """Facts established while validating, reused when the lesson is written."""

    teacher_id: str
    student_id: str
    start_at: datetime
    duration: int
    price: Decimal
    timezone: str


class BookingValidator(BaseService):
    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        slot_generator: Optional[SlotGenerator] = None,
    ):
        super().__init__(db, clock)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.slot_generator = slot_generator or SlotGenerator(db, clock=self.clock)
        self.conflict_checker = self.slot_generator.conflict_checker

    @BaseService.measure_operation("validate_booking")
    def validate(
        self,
        teacher_id: str,
        student_id: str,
        start_at: datetime,
        duration: int,
        timezone: Optional[str] = None,
        *,
        is_recurring_continuation: bool = False,
    ) -> ValidatedBooking:
        """
        Check a requested lesson against every booking rule.

        Args:
            teacher_id: Teacher being booked
            student_id: Student the lesson is for
            start_at: Requested start; naive values are read in ``timezone``
            duration: Lesson length in minutes
            timezone: Requester's timezone, stored on the lesson for display;
                defaults to the teacher's
            is_recurring_continuation: Skip the advance-booking horizon

        Returns:
            ValidatedBooking with the resolved price and UTC start

        Raises:
            NotFoundException: Unknown teacher
            ValidationException: The first rule that fails, with its reason
            BookingConflictException: Another lesson already holds the slot
        """
        teacher = self.teacher_repository.get_by_id(teacher_id)
        if teacher is None:
            raise NotFoundException("Teacher not found", details={"teacher_id": teacher_id})

        booking_tz = get_timezone(timezone or teacher.timezone).zone
        start_at = ensure_utc(start_at, booking_tz)
        context = {
            "teacher_id": teacher_id,
            "student_id": student_id,
            "start_at": start_at.isoformat(),
            "duration": duration,
        }

        settings = self.teacher_repository.get_lesson_settings(teacher_id)
        if settings is None:
            raise ValidationException(
                "Teacher has not configured lesson settings", details=context
            )

        if not self.teacher_repository.has_student(teacher_id, student_id):
            raise ValidationException("Student is not assigned to this teacher", details=context)

        if not settings.allows_duration(duration):
            raise ValidationException(
                f"Teacher does not offer {duration}-minute lessons", details=context
            )

        now = self.now()
        if not is_recurring_continuation:
            horizon = now + timedelta(days=settings.advance_booking_days)
            if start_at > horizon:
                raise ValidationException(
                    f"Cannot book more than {settings.advance_booking_days} days in advance",
                    details=context,
                )

        if start_at < now:
            raise ValidationException("Cannot book lessons in the past", details=context)

        if not self.slot_generator.is_slot_available(teacher_id, start_at, duration):
            taken = self.conflict_checker.find_lesson_conflicts(
                teacher_id, start_at, start_at + timedelta(minutes=duration)
            )
            if taken:
                raise BookingConflictException(
                    details={**context, "conflicting_lesson_id": taken[0].id}
                )
            raise ValidationException("This time slot is not available", details=context)

        return ValidatedBooking(
            teacher_id=teacher_id,
            student_id=student_id,
            start_at=start_at,
            duration=duration,
            price=settings.price_for(duration),
            timezone=booking_tz,
        )
