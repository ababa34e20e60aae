# backend/app/services/recurring_slot_manager.py
"""
Recurring Slot Manager for the scheduling core

Manages indefinite weekly subscriptions:
- Creation, with the first weeks of lessons materialized eagerly
- Lazy backfill of missing occurrences whenever a schedule range is read
- Cancellation of one subscription, or of every subscription of a student
- Monthly billing figures

Occurrences are computed from the slot's teacher-local wall-clock time on
each calendar date, so DST changes never move a lesson's local start.
"""

from datetime import date, datetime, time as dt_time, timedelta
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytz
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    BookingConflictException,
    NotFoundException,
    RepositoryException,
    ValidationException,
)
from ..core.timezone_utils import (
    Clock,
    day_of_week as day_of_week_for,
    format_wall_clock,
    get_timezone,
    iter_dates,
    local_day_bounds,
    parse_wall_clock,
    wall_clock_to_utc,
)
from ..core.ulid_helper import generate_batch_tag
from ..models.lesson import Lesson, LessonStatus
from ..models.recurring_slot import RecurringSlot, RecurringSlotStatus
from ..models.teacher import Teacher
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from .base import BaseService
from .booking_engine import cancellation_note
from .booking_validator import BookingValidator
from .conflict_checker import ConflictChecker, intervals_overlap
from .optimistic_lock import OptimisticLockGuard, run_with_retry
from .recurring_billing import (
    exact_monthly_rate,
    occurrences_in_month,
    standard_monthly_rate,
)
from .transaction_coordinator import TransactionCoordinator, TransactionPolicies

logger = logging.getLogger(__name__)


def slot_batch_tag(slot_id: str) -> str:
    return generate_batch_tag("slot", slot_id)


class RecurringSlotManager(BaseService):
    """Service for indefinite weekly subscriptions."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        coordinator: Optional[TransactionCoordinator] = None,
        validator: Optional[BookingValidator] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(db, clock)
        self.slot_repository = RepositoryFactory.create_recurring_slot_repository(db)
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.conflict_checker = ConflictChecker(db, lesson_repository=self.lesson_repository)
        self.validator = validator or BookingValidator(db, clock=self.clock)
        self.coordinator = coordinator or TransactionCoordinator(db, clock=self.clock)
        self.lock_guard = OptimisticLockGuard()
        self._sleep = sleep

    # Creation

    @BaseService.measure_operation("create_indefinite")
    def create_indefinite(
        self,
        teacher_id: str,
        student_id: str,
        day_of_week: int,
        start_time: str,
        duration: int,
        timezone: Optional[str] = None,
        starting_from: Optional[date] = None,
    ) -> Tuple[RecurringSlot, List[Lesson]]:
        """
        Start a weekly subscription and materialize its first weeks.

        Args:
            teacher_id: Teacher being booked
            student_id: Subscribing student
            day_of_week: 0 = Sunday ... 6 = Saturday, in the teacher's timezone
            start_time: ``HH:MM`` wall-clock time in the teacher's timezone
            duration: Lesson length in minutes
            timezone: Requester's timezone, stored on the lessons for display
            starting_from: Earliest local date for the first occurrence;
                defaults to today

        Returns:
            (slot, lessons) with ``settings.recurring_initial_weeks`` lessons

        Raises:
            ValidationException: Bad day/time or the first occurrence fails validation
            BookingConflictException: An active slot already holds this day and time,
                or an occurrence overlaps an existing lesson
        """
        if not 0 <= day_of_week <= 6:
            raise ValidationException(
                "Day of week must be between 0 (Sunday) and 6 (Saturday)",
                details={"day_of_week": day_of_week},
            )
        wall_clock = parse_wall_clock(start_time)
        start_time = format_wall_clock(wall_clock)
        self.log_operation(
            "create_indefinite",
            teacher_id=teacher_id,
            student_id=student_id,
            day_of_week=day_of_week,
            start_time=start_time,
        )

        tz = self._teacher_timezone(teacher_id)
        now = self.now()
        first_day = self._first_occurrence_date(day_of_week, wall_clock, tz, now, starting_from)

        # The first occurrence stands in for the whole subscription
        validated = self.validator.validate(
            teacher_id,
            student_id,
            wall_clock_to_utc(first_day, wall_clock, tz),
            duration,
            timezone,
            is_recurring_continuation=True,
        )
        self._reject_duplicate(teacher_id, day_of_week, start_time)

        weeks = settings.recurring_initial_weeks

        def unit() -> Tuple[RecurringSlot, List[Lesson]]:
            self._reject_duplicate(teacher_id, day_of_week, start_time)
            slot = self.slot_repository.create(
                teacher_id=teacher_id,
                student_id=student_id,
                day_of_week=day_of_week,
                start_time=start_time,
                duration_minutes=duration,
                per_lesson_price=validated.price,
                monthly_rate=standard_monthly_rate(validated.price),
                status=RecurringSlotStatus.ACTIVE.value,
                created_at=now,
            )
            values = []
            for week in range(weeks):
                start_at = wall_clock_to_utc(first_day + timedelta(weeks=week), wall_clock, tz)
                conflicts = self.conflict_checker.find_lesson_conflicts(
                    teacher_id, start_at, start_at + timedelta(minutes=duration)
                )
                if conflicts:
                    raise BookingConflictException(
                        details={
                            "teacher_id": teacher_id,
                            "start_at": start_at.isoformat(),
                            "duration": duration,
                            "conflicting_lesson_id": conflicts[0].id,
                        }
                    )
                values.append(
                    self._occurrence_values(slot, start_at, validated.timezone)
                )
            return slot, self.lesson_repository.bulk_create(values)

        try:
            slot, lessons = self.coordinator.execute(
                unit, TransactionPolicies.BOOKING, "create_indefinite"
            )
        except RepositoryException as exc:
            if not exc.is_integrity_violation:
                raise
            self.logger.warning(
                f"Unique index rejected recurring slot for teacher {teacher_id}",
                extra={"teacher_id": teacher_id},
            )
            raise BookingConflictException(
                "This weekly time is no longer available",
                details={"teacher_id": teacher_id, "day_of_week": day_of_week, "start_time": start_time},
            ) from exc

        prometheus_metrics.inc_recurring_lessons_generated("create", len(lessons))
        self.logger.info(
            f"Created recurring slot {slot.id} with {len(lessons)} lessons",
            extra={"teacher_id": teacher_id, "slot_id": slot.id},
        )
        return slot, lessons

    # Backfill

    @BaseService.measure_operation("generate_missing_lessons")
    def generate_missing_lessons(self, teacher_id: str, start_date: date, end_date: date) -> int:
        """
        Materialize every missing occurrence of the teacher's active slots.

        Idempotent: an occurrence is skipped when any lesson (in any status)
        already exists for the same teacher, student and instant. Occurrences
        before the slot was created, or overlapping another active lesson of
        the teacher, are skipped as well.

        Returns:
            Number of lessons created
        """
        if end_date < start_date:
            raise ValidationException(
                "End date must not be before start date",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        tz_name = self._teacher(teacher_id).timezone
        tz = get_timezone(tz_name)

        def unit() -> int:
            staged: List[Dict[str, Any]] = []
            for slot in self.slot_repository.get_active_for_teacher(teacher_id):
                wall_clock = parse_wall_clock(slot.start_time)
                candidates = [
                    wall_clock_to_utc(day, wall_clock, tz)
                    for day in iter_dates(start_date, end_date)
                    if day_of_week_for(day) == slot.day_of_week
                ]
                candidates = [start for start in candidates if start >= slot.created_at]
                existing = self.lesson_repository.get_existing_start_times(
                    teacher_id, slot.student_id, candidates
                )
                for start_at in candidates:
                    if start_at in existing:
                        continue
                    end_at = start_at + timedelta(minutes=slot.duration_minutes)
                    if self._overlaps_staged(start_at, end_at, staged) or (
                        self.conflict_checker.find_lesson_conflicts(teacher_id, start_at, end_at)
                    ):
                        self.logger.warning(
                            f"Skipping occurrence of slot {slot.id} at {start_at.isoformat()}: "
                            "overlaps an existing lesson",
                            extra={"teacher_id": teacher_id, "slot_id": slot.id},
                        )
                        continue
                    staged.append(self._occurrence_values(slot, start_at, tz_name))
            self.lesson_repository.bulk_create(staged)
            return len(staged)

        try:
            created = self.coordinator.execute(
                unit, TransactionPolicies.BULK, "generate_missing_lessons"
            )
        except RepositoryException as exc:
            if not exc.is_integrity_violation:
                raise
            # A concurrent backfill committed some of the same occurrences. The unit
            # re-reads existing start times and skips them, so one more pass cannot
            # write duplicates; a second integrity error propagates.
            self.logger.warning(
                f"Concurrent backfill detected for teacher {teacher_id}; re-running",
                extra={"teacher_id": teacher_id},
            )
            created = self.coordinator.execute(
                unit, TransactionPolicies.BULK, "generate_missing_lessons"
            )

        if created:
            prometheus_metrics.inc_recurring_lessons_generated("backfill", created)
            self.logger.info(
                f"Generated {created} recurring lesson(s) for teacher {teacher_id}",
                extra={"teacher_id": teacher_id},
            )
        return created

    @BaseService.measure_operation("get_schedule")
    def get_schedule(self, teacher_id: str, start_date: date, end_date: date) -> List[Lesson]:
        """Backfill the range, then return its SCHEDULED and COMPLETED lessons by start."""
        self.generate_missing_lessons(teacher_id, start_date, end_date)
        tz = get_timezone(self._teacher(teacher_id).timezone)
        range_start, range_end = local_day_bounds(start_date, end_date, tz)
        return self.lesson_repository.get_teacher_lessons_in_range(teacher_id, range_start, range_end)

    # Cancellation

    @BaseService.measure_operation("cancel_slot")
    def cancel_slot(self, slot_id: str, expected_version: Optional[int] = None) -> RecurringSlot:
        """
        Move a subscription to CANCELLED.

        Lessons already materialized are left as they are and can be
        cancelled one by one.
        """
        self.log_operation("cancel_slot", slot_id=slot_id)

        def unit() -> RecurringSlot:
            slot = self.slot_repository.get_by_id(slot_id, populate_existing=True)
            if slot is None:
                raise NotFoundException("Recurring slot not found", details={"slot_id": slot_id})
            if not slot.is_active:
                raise ValidationException(
                    "Recurring slot is already cancelled", details={"slot_id": slot_id}
                )
            return self.lock_guard.update(
                self.slot_repository,
                slot.id,
                slot.version if expected_version is None else expected_version,
                {"status": RecurringSlotStatus.CANCELLED.value, "cancelled_at": self.now()},
            )

        def attempt() -> RecurringSlot:
            return self.coordinator.execute(unit, TransactionPolicies.CANCELLATION, "cancel_slot")

        if expected_version is not None:
            return attempt()
        return run_with_retry(attempt, sleep=self._sleep)

    @BaseService.measure_operation("cancel_all_for_student")
    def cancel_all_for_student(self, student_id: str, reason: Optional[str] = None) -> Dict[str, int]:
        """
        Cancel every active subscription of a student and their upcoming lessons.

        Returns:
            Counts of cancelled slots and lessons
        """
        self.log_operation("cancel_all_for_student", student_id=student_id)

        def unit() -> Dict[str, int]:
            now = self.now()
            slots = self.slot_repository.get_active_for_student(student_id)
            for slot in slots:
                self.lock_guard.update(
                    self.slot_repository,
                    slot.id,
                    slot.version,
                    {"status": RecurringSlotStatus.CANCELLED.value, "cancelled_at": now},
                )
            lessons = self.lesson_repository.get_future_scheduled_for_slots(
                [slot.id for slot in slots], now
            )
            note = cancellation_note(now, reason or "recurring subscription cancelled")
            for lesson in lessons:
                self.lock_guard.update(
                    self.lesson_repository,
                    lesson.id,
                    lesson.version,
                    {
                        "status": LessonStatus.CANCELLED.value,
                        "cancelled_at": now,
                        "notes": f"{lesson.notes}\n{note}" if lesson.notes else note,
                    },
                )
            return {"cancelled_slots": len(slots), "cancelled_lessons": len(lessons)}

        result = run_with_retry(
            lambda: self.coordinator.execute(
                unit, TransactionPolicies.CANCELLATION, "cancel_all_for_student"
            ),
            sleep=self._sleep,
        )
        self.logger.info(
            f"Cancelled {result['cancelled_slots']} slot(s) and "
            f"{result['cancelled_lessons']} lesson(s) for student {student_id}",
            extra={"student_id": student_id},
        )
        return result

    # Billing

    def billing_for_month(self, slot_id: str, year: int, month: int) -> Dict[str, Any]:
        """Flat and exact monthly figures for a subscription, side by side."""
        slot = self.slot_repository.get_by_id(slot_id)
        if slot is None:
            raise NotFoundException("Recurring slot not found", details={"slot_id": slot_id})
        if not 1 <= month <= 12:
            raise ValidationException("Month must be between 1 and 12", details={"month": month})

        exact = exact_monthly_rate(slot.per_lesson_price, slot.day_of_week, year, month)
        return {
            "slot_id": slot.id,
            "year": year,
            "month": month,
            "occurrences": occurrences_in_month(slot.day_of_week, year, month),
            "standard_monthly_rate": slot.monthly_rate,
            "exact_monthly_rate": exact,
            "difference": exact - slot.monthly_rate,
        }

    # Helpers

    def _teacher(self, teacher_id: str) -> Teacher:
        teacher = self.teacher_repository.get_by_id(teacher_id)
        if teacher is None:
            raise NotFoundException("Teacher not found", details={"teacher_id": teacher_id})
        return teacher

    def _teacher_timezone(self, teacher_id: str) -> pytz.BaseTzInfo:
        return get_timezone(self._teacher(teacher_id).timezone)

    @staticmethod
    def _first_occurrence_date(
        day_of_week: int,
        wall_clock: dt_time,
        tz: pytz.BaseTzInfo,
        now: datetime,
        starting_from: Optional[date],
    ) -> date:
        """First local date on ``day_of_week`` whose occurrence is still ahead of ``now``."""
        day = now.astimezone(tz).date()
        if starting_from and starting_from > day:
            day = starting_from
        day += timedelta(days=(day_of_week - day_of_week_for(day)) % 7)
        if wall_clock_to_utc(day, wall_clock, tz) <= now:
            day += timedelta(weeks=1)
        return day

    def _reject_duplicate(self, teacher_id: str, day_of_week: int, start_time: str) -> None:
        duplicate = self.slot_repository.find_active_duplicate(teacher_id, day_of_week, start_time)
        if duplicate is not None:
            raise BookingConflictException(
                "An active recurring slot already exists for this day and time",
                details={
                    "teacher_id": teacher_id,
                    "day_of_week": day_of_week,
                    "start_time": start_time,
                    "conflicting_slot_id": duplicate.id,
                },
            )

    @staticmethod
    def _overlaps_staged(start_at: datetime, end_at: datetime, staged: List[Dict[str, Any]]) -> bool:
        return any(
            intervals_overlap(
                start_at,
                end_at,
                item["start_at"],
                item["start_at"] + timedelta(minutes=item["duration_minutes"]),
            )
            for item in staged
        )

    @staticmethod
    def _occurrence_values(slot: RecurringSlot, start_at: datetime, timezone: str) -> Dict[str, Any]:
        return {
            "teacher_id": slot.teacher_id,
            "student_id": slot.student_id,
            "start_at": start_at,
            "duration_minutes": slot.duration_minutes,
            "price": slot.per_lesson_price,
            "timezone": timezone,
            "status": LessonStatus.SCHEDULED.value,
            "recurring_id": slot_batch_tag(slot.id),
            "recurring_slot_id": slot.id,
            "is_recurring": True,
        }
