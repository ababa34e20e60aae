"""
Tests for AvailabilityService: weekly windows, blocked times and lesson settings.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytz

from app.core.exceptions import NotFoundException, ValidationException
from app.models.availability import AvailabilityWindow, BlockedTime
from app.models.lesson import Lesson
from app.models.lesson_settings import LessonSettings
from app.models.teacher import Teacher
from app.services.availability_service import AvailabilityService


@pytest.fixture
def service(db, clock):
    return AvailabilityService(db, clock=clock)


class TestWeeklyAvailability:
    def test_replace_overwrites_previous_windows(self, db, service, teacher, weekly_availability):
        windows = service.replace_weekly_availability(
            teacher.id,
            [
                {"day_of_week": 3, "start_time": "9:00", "end_time": "12:00"},
                {"day_of_week": 3, "start_time": "12:00", "end_time": "14:30"},
            ],
        )

        assert len(windows) == 2
        stored = service.get_weekly_availability(teacher.id)
        assert [(w.day_of_week, w.start_time, w.end_time) for w in stored] == [
            (3, "09:00", "12:00"),
            (3, "12:00", "14:30"),
        ]
        assert db.query(AvailabilityWindow).count() == 2

    def test_empty_list_clears_the_week(self, service, teacher, weekly_availability):
        service.replace_weekly_availability(teacher.id, [])

        assert service.get_weekly_availability(teacher.id) == []

    def test_overlapping_windows_are_rejected(self, db, service, teacher, weekly_availability):
        with pytest.raises(ValidationException, match="Overlapping time slots on Monday"):
            service.replace_weekly_availability(
                teacher.id,
                [
                    {"day_of_week": 1, "start_time": "09:00", "end_time": "11:00"},
                    {"day_of_week": 1, "start_time": "10:30", "end_time": "12:00"},
                ],
            )

        assert db.query(AvailabilityWindow).count() == 2

    def test_same_hours_on_different_days_are_fine(self, service, teacher):
        windows = service.replace_weekly_availability(
            teacher.id,
            [
                {"day_of_week": 1, "start_time": "09:00", "end_time": "11:00"},
                {"day_of_week": 2, "start_time": "09:00", "end_time": "11:00"},
            ],
        )

        assert len(windows) == 2

    def test_inverted_window(self, service, teacher):
        with pytest.raises(ValidationException, match="End time must be after start time on Tuesday"):
            service.replace_weekly_availability(
                teacher.id, [{"day_of_week": 2, "start_time": "18:00", "end_time": "15:00"}]
            )

    @pytest.mark.parametrize("value", ["9am", "24:00", "12:60", ""])
    def test_bad_time_format(self, service, teacher, value):
        with pytest.raises(ValidationException):
            service.replace_weekly_availability(
                teacher.id, [{"day_of_week": 2, "start_time": value, "end_time": "18:00"}]
            )

    @pytest.mark.parametrize("day", [-1, 7, "1", None])
    def test_bad_day_of_week(self, service, teacher, day):
        with pytest.raises(ValidationException, match="Day of week must be between 0"):
            service.replace_weekly_availability(
                teacher.id, [{"day_of_week": day, "start_time": "09:00", "end_time": "10:00"}]
            )

    def test_unknown_teacher(self, service):
        with pytest.raises(NotFoundException, match="Teacher not found"):
            service.get_weekly_availability("01HZZZZZZZZZZZZZZZZZZZZZZZ")


class TestBlockedTime:
    def test_adds_blocked_time_in_teacher_timezone(self, db, service, teacher, weekly_availability):
        blocked = service.add_blocked_time(
            teacher.id, datetime(2026, 10, 26, 9, 0), datetime(2026, 10, 26, 10, 0), reason="Dentist"
        )

        stored = db.get(BlockedTime, blocked.id)
        assert stored.start_at == datetime(2026, 10, 26, 14, 0, tzinfo=pytz.UTC)
        assert stored.end_at == datetime(2026, 10, 26, 15, 0, tzinfo=pytz.UTC)
        assert stored.reason == "Dentist"

    def test_inverted_interval(self, service, teacher, chicago):
        start = chicago.localize(datetime(2026, 10, 26, 10, 0))
        with pytest.raises(ValidationException, match="End time must be after start time"):
            service.add_blocked_time(teacher.id, start, start)

    def test_past_interval(self, service, teacher, clock):
        with pytest.raises(ValidationException, match="Cannot block time in the past"):
            service.add_blocked_time(
                teacher.id, clock.now - timedelta(hours=2), clock.now + timedelta(hours=1)
            )

    def test_scheduled_lesson_prevents_blocking(self, db, service, teacher, student, weekly_availability, chicago):
        start = chicago.localize(datetime(2026, 10, 27, 16, 0))
        db.add(
            Lesson(
                teacher_id=teacher.id,
                student_id=student.id,
                start_at=start,
                duration_minutes=60,
                price=Decimal("50.00"),
                timezone=teacher.timezone,
            )
        )
        db.commit()

        with pytest.raises(
            ValidationException,
            match=r"Cannot block time: 1 lesson\(s\) already scheduled during this period",
        ):
            service.add_blocked_time(teacher.id, start - timedelta(minutes=30), start + timedelta(minutes=30))

        assert db.query(BlockedTime).count() == 0

    def test_adjacent_lesson_does_not_prevent_blocking(self, db, service, teacher, student, weekly_availability, chicago):
        start = chicago.localize(datetime(2026, 10, 27, 16, 0))
        db.add(
            Lesson(
                teacher_id=teacher.id,
                student_id=student.id,
                start_at=start,
                duration_minutes=60,
                price=Decimal("50.00"),
                timezone=teacher.timezone,
            )
        )
        db.commit()

        service.add_blocked_time(teacher.id, start + timedelta(hours=1), start + timedelta(hours=2))

        assert db.query(BlockedTime).count() == 1

    def test_remove_blocked_time(self, db, service, teacher):
        blocked = service.add_blocked_time(
            teacher.id, datetime(2026, 10, 26, 9, 0), datetime(2026, 10, 26, 10, 0)
        )

        service.remove_blocked_time(teacher.id, blocked.id)

        assert db.query(BlockedTime).count() == 0

    def test_cannot_remove_another_teachers_blocked_time(self, db, service, teacher):
        blocked = service.add_blocked_time(
            teacher.id, datetime(2026, 10, 26, 9, 0), datetime(2026, 10, 26, 10, 0)
        )
        stranger = Teacher(name="Other Teacher", email="other@example.com", timezone="Europe/London")
        db.add(stranger)
        db.commit()

        with pytest.raises(NotFoundException, match="Blocked time not found"):
            service.remove_blocked_time(stranger.id, blocked.id)

        assert db.query(BlockedTime).count() == 1


class TestLessonSettings:
    def test_creates_settings(self, db, service, teacher):
        saved = service.save_lesson_settings(
            teacher.id,
            allows_30_min=True,
            allows_60_min=False,
            price_30_min=Decimal("25.00"),
            price_60_min=Decimal("0"),
            advance_booking_days=14,
        )

        assert saved.enabled_durations == [30]
        assert db.query(LessonSettings).count() == 1

    def test_updates_existing_settings(self, db, service, teacher, lesson_settings):
        service.save_lesson_settings(
            teacher.id,
            allows_30_min=True,
            allows_60_min=True,
            price_30_min=Decimal("35.00"),
            price_60_min=Decimal("60.00"),
            advance_booking_days=60,
        )

        assert db.query(LessonSettings).count() == 1
        stored = db.query(LessonSettings).one()
        assert stored.price_60_min == Decimal("60.00")
        assert stored.advance_booking_days == 60

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"allows_30_min": False, "allows_60_min": False}, "At least one lesson duration"),
            ({"price_30_min": Decimal("0")}, "30-minute lesson price must be greater than 0"),
            ({"price_60_min": Decimal("-5")}, "60-minute lesson price must be greater than 0"),
            ({"advance_booking_days": 0}, "Advance booking must be between 1 and 90 days"),
            ({"advance_booking_days": 91}, "Advance booking must be between 1 and 90 days"),
        ],
    )
    def test_rejects_invalid_settings(self, db, service, teacher, overrides, message):
        values = {
            "allows_30_min": True,
            "allows_60_min": True,
            "price_30_min": Decimal("30.00"),
            "price_60_min": Decimal("50.00"),
            "advance_booking_days": 30,
        }
        values.update(overrides)

        with pytest.raises(ValidationException, match=message):
            service.save_lesson_settings(teacher.id, **values)

        assert db.query(LessonSettings).count() == 0
