# backend/tests/conftest.py
"""
Pytest configuration for the scheduling core.

Every test gets its own file-backed SQLite database so that tests using
real threads see committed data across connections. The clock is frozen at
Monday 2026-10-19 12:00 UTC, which is 07:00 in America/Chicago (CDT).
"""

import os

# CRITICAL: Point the application at SQLite BEFORE any app imports!
os.environ["DATABASE_URL"] = "sqlite:///./lessonbook_test.db"
os.environ["ENVIRONMENT"] = "test"

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytz
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

import app.models  # noqa: F401  (registers every table on Base.metadata)
from app.database import Base
from app.models.availability import AvailabilityWindow
from app.models.lesson_settings import LessonSettings
from app.models.teacher import Student, Teacher

TEACHER_TIMEZONE = "America/Chicago"


class FrozenClock:
    """Callable clock returning a fixed aware UTC instant; tests may move it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 10, 19, 12, 0, tzinfo=pytz.UTC))


@pytest.fixture
def engine(tmp_path):
    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'scheduling.db'}",
        connect_args={"check_same_thread": False, "timeout": 10},
    )

    @event.listens_for(test_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def teacher(db: Session) -> Teacher:
    record = Teacher(name="Test Teacher", email="teacher@example.com", timezone=TEACHER_TIMEZONE)
    db.add(record)
    db.commit()
    return record


@pytest.fixture
def student(db: Session, teacher: Teacher) -> Student:
    record = Student(teacher_id=teacher.id, name="Student A", email="student.a@example.com")
    db.add(record)
    db.commit()
    return record


@pytest.fixture
def other_student(db: Session, teacher: Teacher) -> Student:
    record = Student(teacher_id=teacher.id, name="Student B", email="student.b@example.com")
    db.add(record)
    db.commit()
    return record


@pytest.fixture
def unassigned_student(db: Session) -> Student:
    record = Student(teacher_id=None, name="Student C", email="student.c@example.com")
    db.add(record)
    db.commit()
    return record


@pytest.fixture
def lesson_settings(db: Session, teacher: Teacher) -> LessonSettings:
    record = LessonSettings(
        teacher_id=teacher.id,
        allows_30_min=True,
        allows_60_min=True,
        price_30_min=Decimal("30.00"),
        price_60_min=Decimal("50.00"),
        advance_booking_days=30,
    )
    db.add(record)
    db.commit()
    return record


@pytest.fixture
def weekly_availability(db: Session, teacher: Teacher, lesson_settings: LessonSettings):
    """Monday 09:00-10:00 and Tuesday 15:00-18:00, teacher-local."""
    windows = [
        AvailabilityWindow(teacher_id=teacher.id, day_of_week=1, start_time="09:00", end_time="10:00"),
        AvailabilityWindow(teacher_id=teacher.id, day_of_week=2, start_time="15:00", end_time="18:00"),
    ]
    db.add_all(windows)
    db.commit()
    return windows


@pytest.fixture
def chicago():
    return pytz.timezone(TEACHER_TIMEZONE)
