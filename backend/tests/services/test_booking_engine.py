"""
Tests for BookingEngine: single bookings, fixed weekly batches and cancellation.
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest
import pytz

from app.core.exceptions import (
    BookingConflictException,
    NotFoundException,
    OptimisticLockException,
    ServiceException,
    ValidationException,
)
from app.core.timezone_utils import wall_clock_to_utc
from app.models.availability import BlockedTime
from app.models.lesson import Lesson, LessonStatus
from app.services.booking_engine import BookingEngine
from app.services.transaction_coordinator import TransactionCoordinator


@pytest.fixture
def engine_service(db, clock):
    coordinator = TransactionCoordinator(db, clock=clock, sleep=lambda _: None)
    return BookingEngine(db, clock=clock, coordinator=coordinator, sleep=lambda _: None)


@pytest.fixture
def next_monday_nine(chicago):
    return chicago.localize(datetime(2026, 10, 26, 9, 0))


@pytest.fixture
def tuesday_four(chicago):
    return chicago.localize(datetime(2026, 10, 20, 16, 0))


def lesson_count(db, **filters) -> int:
    return db.query(Lesson).filter_by(**filters).count()


class TestBookSingle:
    def test_books_available_slot(self, db, engine_service, teacher, student, weekly_availability, next_monday_nine):
        lesson = engine_service.book_single(teacher.id, student.id, next_monday_nine, 30)

        assert lesson.status == LessonStatus.SCHEDULED.value
        assert lesson.price == Decimal("30.00")
        assert lesson.timezone == "America/Chicago"
        assert lesson.version == 1
        assert lesson.is_recurring is False
        stored = db.query(Lesson).one()
        assert stored.start_at == datetime(2026, 10, 26, 14, 0, tzinfo=pytz.UTC)
        assert stored.duration_minutes == 30

    def test_naive_start_is_read_in_requester_timezone(self, db, engine_service, teacher, student, weekly_availability):
        # 10:00 in New York is 09:00 in Chicago
        lesson = engine_service.book_single(
            teacher.id, student.id, datetime(2026, 10, 26, 10, 0), 60, "America/New_York"
        )

        assert lesson.start_at == datetime(2026, 10, 26, 14, 0, tzinfo=pytz.UTC)
        assert lesson.timezone == "America/New_York"
        assert lesson.price == Decimal("50.00")

    def test_slot_taken_by_another_student_conflicts(
        self, db, engine_service, teacher, student, other_student, weekly_availability, next_monday_nine
    ):
        first = engine_service.book_single(teacher.id, student.id, next_monday_nine, 60)

        with pytest.raises(BookingConflictException) as exc_info:
            engine_service.book_single(teacher.id, other_student.id, next_monday_nine, 60)

        assert exc_info.value.details["conflicting_lesson_id"] == first.id
        assert exc_info.value.to_http_exception().status_code == 409
        assert lesson_count(db, teacher_id=teacher.id) == 1

    def test_partially_overlapping_request_conflicts(
        self, db, engine_service, teacher, student, other_student, weekly_availability, next_monday_nine
    ):
        engine_service.book_single(teacher.id, student.id, next_monday_nine, 60)

        with pytest.raises(BookingConflictException):
            engine_service.book_single(
                teacher.id, other_student.id, next_monday_nine + timedelta(minutes=30), 30
            )

    def test_back_to_back_lessons_are_allowed(
        self, db, engine_service, teacher, student, other_student, weekly_availability, next_monday_nine
    ):
        engine_service.book_single(teacher.id, student.id, next_monday_nine, 30)
        engine_service.book_single(
            teacher.id, other_student.id, next_monday_nine + timedelta(minutes=30), 30
        )

        assert lesson_count(db, teacher_id=teacher.id) == 2

    def test_cancelled_lesson_frees_the_slot(
        self, db, engine_service, teacher, student, other_student, weekly_availability, next_monday_nine
    ):
        first = engine_service.book_single(teacher.id, student.id, next_monday_nine, 60)
        engine_service.cancel(first.id)

        second = engine_service.book_single(teacher.id, other_student.id, next_monday_nine, 60)

        assert second.id != first.id
        assert lesson_count(db, status=LessonStatus.SCHEDULED.value) == 1


class TestBookSingleValidation:
    def test_past_start_is_rejected(self, db, engine_service, teacher, student, weekly_availability, chicago):
        with pytest.raises(ValidationException, match="Cannot book lessons in the past"):
            engine_service.book_single(
                teacher.id, student.id, chicago.localize(datetime(2026, 10, 18, 9, 0)), 30
            )

        assert lesson_count(db) == 0

    def test_beyond_advance_booking_horizon(self, db, engine_service, teacher, student, weekly_availability, chicago):
        with pytest.raises(ValidationException, match="Cannot book more than 30 days in advance"):
            engine_service.book_single(
                teacher.id, student.id, chicago.localize(datetime(2026, 11, 30, 9, 0)), 30
            )

        assert lesson_count(db) == 0

    def test_duration_not_offered(self, db, engine_service, teacher, student, weekly_availability, lesson_settings, next_monday_nine):
        lesson_settings.allows_60_min = False
        db.commit()

        with pytest.raises(ValidationException, match="does not offer 60-minute lessons"):
            engine_service.book_single(teacher.id, student.id, next_monday_nine, 60)

    def test_student_of_another_teacher(self, engine_service, teacher, unassigned_student, weekly_availability, next_monday_nine):
        with pytest.raises(ValidationException, match="Student is not assigned to this teacher"):
            engine_service.book_single(teacher.id, unassigned_student.id, next_monday_nine, 30)

    def test_teacher_without_settings(self, db, engine_service, teacher, student, next_monday_nine):
        with pytest.raises(ValidationException, match="has not configured lesson settings"):
            engine_service.book_single(teacher.id, student.id, next_monday_nine, 30)

    def test_outside_weekly_window(self, db, engine_service, teacher, student, weekly_availability, chicago):
        with pytest.raises(ValidationException, match="This time slot is not available"):
            engine_service.book_single(
                teacher.id, student.id, chicago.localize(datetime(2026, 10, 26, 11, 0)), 30
            )

    def test_blocked_time(self, db, engine_service, teacher, student, weekly_availability, next_monday_nine):
        db.add(
            BlockedTime(
                teacher_id=teacher.id,
                start_at=next_monday_nine,
                end_at=next_monday_nine + timedelta(hours=1),
                reason="Dentist",
            )
        )
        db.commit()

        with pytest.raises(ValidationException, match="This time slot is not available"):
            engine_service.book_single(teacher.id, student.id, next_monday_nine, 30)

    def test_unknown_teacher(self, engine_service, student, next_monday_nine):
        with pytest.raises(NotFoundException):
            engine_service.book_single("01HZZZZZZZZZZZZZZZZZZZZZZZ", student.id, next_monday_nine, 30)


class TestBookFixedBatch:
    def test_books_every_week_under_one_tag(self, db, engine_service, teacher, student, weekly_availability, tuesday_four):
        lessons = engine_service.book_fixed_batch(teacher.id, student.id, tuesday_four, 60, weeks=8)

        assert len(lessons) == 8
        tags = {lesson.recurring_id for lesson in lessons}
        assert len(tags) == 1
        tag = tags.pop()
        assert tag.startswith("recurring-")
        assert all(lesson.is_recurring for lesson in lessons)
        assert engine_service.lesson_repository.count_by_batch_tag(tag) == 8

    def test_weeks_keep_local_wall_clock_across_dst(self, engine_service, teacher, student, weekly_availability, tuesday_four, chicago):
        lessons = engine_service.book_fixed_batch(teacher.id, student.id, tuesday_four, 60, weeks=4)

        starts = sorted(lesson.start_at for lesson in lessons)
        assert [s.astimezone(chicago).strftime("%m-%d %H:%M") for s in starts] == [
            "10-20 16:00",
            "10-27 16:00",
            "11-03 16:00",
            "11-10 16:00",
        ]
        assert [s.astimezone(pytz.UTC).hour for s in starts] == [21, 21, 22, 22]

    def test_later_weeks_may_pass_the_horizon(self, engine_service, teacher, student, weekly_availability, tuesday_four):
        lessons = engine_service.book_fixed_batch(teacher.id, student.id, tuesday_four, 30, weeks=10)

        assert max(lesson.start_at for lesson in lessons) > tuesday_four + timedelta(days=30)

    def test_failing_week_aborts_whole_batch(self, db, engine_service, teacher, student, weekly_availability, tuesday_four, chicago):
        # Nov 3 is after the fall-back change, so the local 16:00 is rebuilt for that date
        week_three = wall_clock_to_utc(date(2026, 11, 3), time(16, 0), chicago)
        db.add(
            BlockedTime(
                teacher_id=teacher.id,
                start_at=week_three,
                end_at=week_three + timedelta(hours=1),
            )
        )
        db.commit()

        with pytest.raises(ValidationException, match="Week 3: This time slot is not available"):
            engine_service.book_fixed_batch(teacher.id, student.id, tuesday_four, 60, weeks=6)

        assert lesson_count(db) == 0

    def test_week_taken_by_another_lesson_aborts_batch(
        self, db, engine_service, teacher, student, other_student, weekly_availability, tuesday_four
    ):
        taken = engine_service.book_single(
            teacher.id, other_student.id, tuesday_four + timedelta(weeks=1), 60
        )

        with pytest.raises(BookingConflictException) as exc_info:
            engine_service.book_fixed_batch(teacher.id, student.id, tuesday_four, 60, weeks=4)

        assert exc_info.value.details["week"] == 2
        assert exc_info.value.details["conflicting_lesson_id"] == taken.id

        assert lesson_count(db, student_id=student.id) == 0
        assert lesson_count(db) == 1
        assert db.get(Lesson, taken.id).status == LessonStatus.SCHEDULED.value

    @pytest.mark.parametrize(
        "weeks, message",
        [(1, "at least 2 weeks"), (0, "at least 2 weeks"), (53, "cannot exceed 52 weeks")],
    )
    def test_week_count_bounds(self, db, engine_service, teacher, student, weekly_availability, tuesday_four, weeks, message):
        with pytest.raises(ValidationException, match=message):
            engine_service.book_fixed_batch(teacher.id, student.id, tuesday_four, 60, weeks=weeks)

        assert lesson_count(db) == 0

    def test_first_week_is_held_to_horizon(self, engine_service, teacher, student, weekly_availability, chicago):
        with pytest.raises(ValidationException, match="days in advance"):
            engine_service.book_fixed_batch(
                teacher.id, student.id, chicago.localize(datetime(2026, 12, 1, 16, 0)), 60, weeks=2
            )

    def test_short_batch_is_compensated(self, db, engine_service, teacher, student, weekly_availability, tuesday_four, monkeypatch):
        monkeypatch.setattr(engine_service.lesson_repository, "count_by_batch_tag", lambda tag: 2)

        with pytest.raises(ServiceException, match="could not be completed"):
            engine_service.book_fixed_batch(teacher.id, student.id, tuesday_four, 60, weeks=3)

        assert lesson_count(db) == 0


class TestRollbackBatch:
    def test_removes_only_the_tagged_lessons(
        self, db, engine_service, teacher, student, other_student, weekly_availability, tuesday_four, next_monday_nine
    ):
        lessons = engine_service.book_fixed_batch(teacher.id, student.id, tuesday_four, 60, weeks=3)
        single = engine_service.book_single(teacher.id, other_student.id, next_monday_nine, 30)

        removed = engine_service.rollback_batch(lessons[0].recurring_id)

        assert removed == 3
        assert [lesson.id for lesson in db.query(Lesson).all()] == [single.id]

    def test_unknown_tag_removes_nothing(self, engine_service, teacher):
        assert engine_service.rollback_batch("recurring-unknown") == 0


class TestCancel:
    @pytest.fixture
    def booked(self, engine_service, teacher, student, weekly_availability, next_monday_nine):
        return engine_service.book_single(teacher.id, student.id, next_monday_nine, 30)

    def test_cancels_upcoming_lesson(self, db, engine_service, booked, clock):
        lesson = engine_service.cancel(booked.id, reason="Feeling unwell")

        assert lesson.status == LessonStatus.CANCELLED.value
        assert lesson.cancelled_at == clock.now
        assert lesson.version == 2
        assert "Cancelled at" in lesson.notes
        assert lesson.notes.endswith("Feeling unwell")
        stored = db.get(Lesson, booked.id)
        assert stored.status == LessonStatus.CANCELLED.value

    def test_cancel_twice_is_rejected(self, db, engine_service, booked):
        engine_service.cancel(booked.id)

        with pytest.raises(ValidationException, match="already cancelled"):
            engine_service.cancel(booked.id)

        assert db.get(Lesson, booked.id).version == 2

    def test_started_lesson_cannot_be_cancelled(self, db, engine_service, booked, clock):
        clock.now = booked.start_at + timedelta(minutes=5)

        with pytest.raises(ValidationException, match="already started"):
            engine_service.cancel(booked.id)

        stored = db.get(Lesson, booked.id)
        assert stored.status == LessonStatus.SCHEDULED.value
        assert stored.version == 1

    def test_lesson_starting_now_counts_as_started(self, engine_service, booked, clock):
        clock.now = booked.start_at

        with pytest.raises(ValidationException, match="already started"):
            engine_service.cancel(booked.id)

    def test_stale_version_is_reported(self, db, engine_service, booked):
        with pytest.raises(OptimisticLockException) as exc_info:
            engine_service.cancel(booked.id, expected_version=7)

        assert exc_info.value.to_http_exception().status_code == 409
        stored = db.get(Lesson, booked.id)
        assert stored.status == LessonStatus.SCHEDULED.value
        assert stored.version == 1

    def test_matching_version_cancels(self, engine_service, booked):
        lesson = engine_service.cancel(booked.id, expected_version=1)

        assert lesson.status == LessonStatus.CANCELLED.value

    def test_unknown_lesson(self, engine_service, teacher):
        with pytest.raises(NotFoundException):
            engine_service.cancel("01HZZZZZZZZZZZZZZZZZZZZZZZ")
