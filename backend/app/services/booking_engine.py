# backend/app/services/booking_engine.py
"""
Booking Engine Service for the scheduling core

Commits lessons:
- Single lessons, re-checked for conflicts inside a serializable transaction
- Fixed-length weekly batches, written all-or-nothing under one batch tag
- Cancellation, guarded by the lesson's version counter

Validation happens before the transaction opens; the in-transaction
re-check plus the partial unique index on (teacher_id, start_at) close the
gap between the two.
"""

from datetime import datetime, timedelta
import logging
import time
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ..core.constants import MAX_RECURRING_WEEKS, MIN_RECURRING_WEEKS
from ..core.exceptions import (
    BookingConflictException,
    NotFoundException,
    RepositoryException,
    ServiceException,
    ValidationException,
)
from ..core.timezone_utils import Clock, get_timezone, wall_clock_to_utc
from ..core.ulid_helper import generate_batch_tag
from ..models.lesson import Lesson, LessonStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from .base import BaseService
from .booking_validator import BookingValidator, ValidatedBooking
from .conflict_checker import ConflictChecker
from .optimistic_lock import OptimisticLockGuard, run_with_retry
from .transaction_coordinator import SERIALIZABLE, TransactionCoordinator, TransactionPolicies

logger = logging.getLogger(__name__)


class BookingEngine(BaseService):
    """
    Service for creating and cancelling lessons.

    Args:
        db: Database session
        clock: Current-time source shared with validation
        coordinator: Transaction runner; built from ``db`` when omitted
        sleep: Backoff sleep for optimistic-lock retries
    """

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        coordinator: Optional[TransactionCoordinator] = None,
        validator: Optional[BookingValidator] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(db, clock)
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.conflict_checker = ConflictChecker(db, lesson_repository=self.lesson_repository)
        self.validator = validator or BookingValidator(db, clock=self.clock)
        self.coordinator = coordinator or TransactionCoordinator(db, clock=self.clock)
        self.lock_guard = OptimisticLockGuard()
        self._sleep = sleep

    # Booking

    @BaseService.measure_operation("book_single")
    def book_single(
        self,
        teacher_id: str,
        student_id: str,
        start_at: datetime,
        duration: int,
        timezone: Optional[str] = None,
    ) -> Lesson:
        """
        Book one lesson.

        Raises:
            ValidationException: A booking rule failed; nothing was written
            BookingConflictException: The slot was taken before commit
            TransientStoreException: Storage kept failing past the retry budget
        """
        self.log_operation(
            "book_single", teacher_id=teacher_id, student_id=student_id, duration=duration
        )
        validated = self.validator.validate(teacher_id, student_id, start_at, duration, timezone)

        def unit() -> Lesson:
            self._ensure_slot_free(validated)
            return self.lesson_repository.create(**self._lesson_values(validated))

        lesson = self._execute_booking(unit, TransactionPolicies.BOOKING, validated, "book_single")
        self.logger.info(
            f"Booked lesson {lesson.id} for teacher {teacher_id}",
            extra={"teacher_id": teacher_id, "lesson_id": lesson.id},
        )
        return lesson

    @BaseService.measure_operation("book_fixed_batch")
    def book_fixed_batch(
        self,
        teacher_id: str,
        student_id: str,
        start_at: datetime,
        duration: int,
        weeks: int,
        timezone: Optional[str] = None,
    ) -> List[Lesson]:
        """
        Book the same weekly slot for ``weeks`` consecutive weeks.

        Every occurrence is validated on its own; only the first is held to
        the advance-booking horizon. Either all lessons are written under a
        shared batch tag or none are.
        """
        if weeks < MIN_RECURRING_WEEKS:
            raise ValidationException(
                f"Recurring lessons require at least {MIN_RECURRING_WEEKS} weeks",
                details={"weeks": weeks},
            )
        if weeks > MAX_RECURRING_WEEKS:
            raise ValidationException(
                f"Recurring lessons cannot exceed {MAX_RECURRING_WEEKS} weeks",
                details={"weeks": weeks},
            )
        self.log_operation(
            "book_fixed_batch",
            teacher_id=teacher_id,
            student_id=student_id,
            duration=duration,
            weeks=weeks,
        )

        first = self.validator.validate(teacher_id, student_id, start_at, duration, timezone)
        occurrences = [first]
        for week, occurrence_start in enumerate(
            self._weekly_starts(teacher_id, first.start_at, weeks)[1:], start=2
        ):
            try:
                occurrences.append(
                    self.validator.validate(
                        teacher_id,
                        student_id,
                        occurrence_start,
                        duration,
                        first.timezone,
                        is_recurring_continuation=True,
                    )
                )
            except ValidationException as exc:
                raise ValidationException(
                    f"Week {week}: {exc.message}", details={**exc.details, "week": week}
                ) from exc
            except BookingConflictException as exc:
                raise BookingConflictException(
                    exc.message, details={**exc.details, "week": week}
                ) from exc

        batch_tag = generate_batch_tag("recurring")

        def unit() -> List[Lesson]:
            for occurrence in occurrences:
                self._ensure_slot_free(occurrence)
            return self.lesson_repository.bulk_create(
                [
                    self._lesson_values(occurrence, recurring_id=batch_tag, is_recurring=True)
                    for occurrence in occurrences
                ]
            )

        policy = TransactionPolicies.BULK.with_isolation(SERIALIZABLE)
        lessons = self._execute_booking(unit, policy, first, "book_fixed_batch")

        stored = self.lesson_repository.count_by_batch_tag(batch_tag)
        if stored != weeks:
            self.logger.warning(
                f"Batch {batch_tag} stored {stored} of {weeks} lessons; compensating",
                extra={"teacher_id": teacher_id, "batch_tag": batch_tag},
            )
            self.rollback_batch(batch_tag)
            raise ServiceException(
                "Recurring booking could not be completed",
                details={"batch_tag": batch_tag, "expected": weeks, "stored": stored},
            )
        return lessons

    def rollback_batch(self, batch_tag: str) -> int:
        """Delete every lesson sharing ``batch_tag``; returns the number removed."""
        removed = self.coordinator.execute(
            lambda: self.lesson_repository.delete_by_batch_tag(batch_tag),
            TransactionPolicies.BULK,
            "rollback_batch",
        )
        self.logger.warning(
            f"Rolled back batch {batch_tag}: {removed} lesson(s) removed",
            extra={"batch_tag": batch_tag},
        )
        return removed

    # Cancellation

    @BaseService.measure_operation("cancel_lesson")
    def cancel(
        self,
        lesson_id: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Lesson:
        """
        Cancel an upcoming lesson.

        Args:
            lesson_id: Lesson to cancel
            reason: Appended to the lesson notes
            expected_version: Version the caller last saw; when given, a
                concurrent change is reported instead of retried

        Raises:
            NotFoundException: Unknown lesson
            ValidationException: Already cancelled, or already started
            OptimisticLockException: The lesson changed concurrently
        """
        self.log_operation("cancel_lesson", lesson_id=lesson_id)

        def unit() -> Lesson:
            lesson = self.lesson_repository.get_by_id(lesson_id, populate_existing=True)
            if lesson is None:
                raise NotFoundException("Lesson not found", details={"lesson_id": lesson_id})
            if lesson.is_cancelled:
                raise ValidationException(
                    "Lesson is already cancelled", details={"lesson_id": lesson_id}
                )
            now = self.now()
            if lesson.start_at <= now:
                raise ValidationException(
                    "Cannot cancel lessons that have already started",
                    details={"lesson_id": lesson_id, "start_at": lesson.start_at.isoformat()},
                )
            return self.lock_guard.update(
                self.lesson_repository,
                lesson.id,
                lesson.version if expected_version is None else expected_version,
                {
                    "status": LessonStatus.CANCELLED.value,
                    "cancelled_at": now,
                    "notes": _append_note(lesson.notes, cancellation_note(now, reason)),
                },
            )

        def attempt() -> Lesson:
            return self.coordinator.execute(
                unit, TransactionPolicies.CANCELLATION, "cancel_lesson"
            )

        if expected_version is not None:
            lesson = attempt()
        else:
            lesson = run_with_retry(attempt, sleep=self._sleep)
        self.logger.info(f"Cancelled lesson {lesson_id}", extra={"lesson_id": lesson_id})
        return lesson

    # Helpers

    def _weekly_starts(self, teacher_id: str, first_start: datetime, weeks: int) -> List[datetime]:
        """Same teacher-local wall-clock time on ``weeks`` consecutive weeks."""
        teacher = self.teacher_repository.get_by_id(teacher_id)
        if teacher is None:
            raise NotFoundException("Teacher not found", details={"teacher_id": teacher_id})
        tz = get_timezone(teacher.timezone)
        local = first_start.astimezone(tz)
        return [
            wall_clock_to_utc(local.date() + timedelta(weeks=week), local.time(), tz)
            for week in range(weeks)
        ]

    def _ensure_slot_free(self, booking: ValidatedBooking) -> None:
        end_at = booking.start_at + timedelta(minutes=booking.duration)
        conflicts = self.conflict_checker.find_lesson_conflicts(
            booking.teacher_id, booking.start_at, end_at
        )
        if conflicts:
            prometheus_metrics.inc_booking_conflict("recheck")
            self.logger.warning(
                f"Slot taken before commit for teacher {booking.teacher_id} at "
                f"{booking.start_at.isoformat()}",
                extra={"teacher_id": booking.teacher_id, "lesson_id": conflicts[0].id},
            )
            raise BookingConflictException(
                details={
                    "teacher_id": booking.teacher_id,
                    "start_at": booking.start_at.isoformat(),
                    "duration": booking.duration,
                    "conflicting_lesson_id": conflicts[0].id,
                }
            )

    def _execute_booking(self, unit, policy, booking: ValidatedBooking, description: str):
        try:
            return self.coordinator.execute(unit, policy, description)
        except RepositoryException as exc:
            if not exc.is_integrity_violation:
                raise
            prometheus_metrics.inc_booking_conflict("unique_index")
            self.logger.warning(
                f"Unique index rejected {description} for teacher {booking.teacher_id}",
                extra={"teacher_id": booking.teacher_id},
            )
            raise BookingConflictException(
                details={
                    "teacher_id": booking.teacher_id,
                    "start_at": booking.start_at.isoformat(),
                    "duration": booking.duration,
                }
            ) from exc

    @staticmethod
    def _lesson_values(
        booking: ValidatedBooking,
        recurring_id: Optional[str] = None,
        is_recurring: bool = False,
    ) -> dict:
        return {
            "teacher_id": booking.teacher_id,
            "student_id": booking.student_id,
            "start_at": booking.start_at,
            "duration_minutes": booking.duration,
            "price": booking.price,
            "timezone": booking.timezone,
            "status": LessonStatus.SCHEDULED.value,
            "recurring_id": recurring_id,
            "is_recurring": is_recurring,
        }


def cancellation_note(when: datetime, reason: Optional[str] = None) -> str:
    note = f"Cancelled at {when.isoformat()}"
    return f"{note}: {reason}" if reason else note


def _append_note(existing: Optional[str], note: str) -> str:
    return f"{existing}\n{note}" if existing else note
