"""
Two requests racing for the same slot: exactly one lesson may be written.

The threaded test runs two sessions against the same SQLite file. The other
tests force each of the two defences (the in-transaction re-check and the
partial unique index) deterministically.
"""

from datetime import datetime
import threading
from unittest.mock import Mock

import pytest

from app.core.exceptions import BookingConflictException
from app.models.lesson import Lesson
from app.services.booking_engine import BookingEngine
from app.services.transaction_coordinator import TransactionCoordinator


def build_engine(session, clock) -> BookingEngine:
    coordinator = TransactionCoordinator(session, clock=clock, sleep=lambda _: None)
    return BookingEngine(session, clock=clock, coordinator=coordinator, sleep=lambda _: None)


@pytest.fixture
def slot_start(chicago):
    return chicago.localize(datetime(2026, 10, 27, 16, 0))


def test_simultaneous_requests_book_exactly_once(
    session_factory, db, clock, teacher, student, other_student, weekly_availability, slot_start
):
    barrier = threading.Barrier(2)
    outcomes = {}

    def book(student_id):
        session = session_factory()
        try:
            engine = build_engine(session, clock)
            barrier.wait(timeout=10)
            outcomes[student_id] = engine.book_single(teacher.id, student_id, slot_start, 60)
        except Exception as exc:  # collected for the assertions below
            outcomes[student_id] = exc
        finally:
            session.close()

    threads = [threading.Thread(target=book, args=(sid,)) for sid in (student.id, other_student.id)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    results = list(outcomes.values())
    booked = [r for r in results if isinstance(r, Lesson)]
    conflicts = [r for r in results if isinstance(r, BookingConflictException)]
    assert len(booked) == 1, results
    assert len(conflicts) == 1, results
    db.expire_all()
    assert db.query(Lesson).filter(Lesson.teacher_id == teacher.id).count() == 1


def test_recheck_rejects_slot_taken_after_validation(
    db, clock, teacher, student, other_student, weekly_availability, slot_start
):
    first = build_engine(db, clock)
    second = build_engine(db, clock)

    # The second request passes validation while the slot is still free
    validated = second.validator.validate(teacher.id, other_student.id, slot_start, 60)
    winner = first.book_single(teacher.id, student.id, slot_start, 60)
    second.validator = Mock(validate=Mock(return_value=validated))

    with pytest.raises(BookingConflictException) as exc_info:
        second.book_single(teacher.id, other_student.id, slot_start, 60)

    assert exc_info.value.details["conflicting_lesson_id"] == winner.id
    assert db.query(Lesson).count() == 1


def test_unique_index_backstops_the_recheck(
    db, clock, teacher, student, other_student, weekly_availability, slot_start, monkeypatch
):
    first = build_engine(db, clock)
    second = build_engine(db, clock)

    validated = second.validator.validate(teacher.id, other_student.id, slot_start, 60)
    first.book_single(teacher.id, student.id, slot_start, 60)
    second.validator = Mock(validate=Mock(return_value=validated))
    monkeypatch.setattr(second, "_ensure_slot_free", lambda booking: None)

    with pytest.raises(BookingConflictException):
        second.book_single(teacher.id, other_student.id, slot_start, 60)

    assert db.query(Lesson).count() == 1
