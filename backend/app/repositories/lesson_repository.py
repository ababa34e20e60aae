# backend/app/repositories/lesson_repository.py
"""
Lesson Repository for the scheduling core.

Time-range queries widen their lower bound by the longest lesson duration
so that a lesson starting before the window but running into it is
returned; callers apply the exact half-open overlap test.
"""

from datetime import datetime, timedelta
import logging
from typing import Iterable, List, Optional, Sequence, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.constants import MAX_LESSON_DURATION
from ..database.errors import translate_db_error
from ..models.lesson import ACTIVE_LESSON_STATUSES, Lesson, LessonStatus
from .base_repository import VersionedRepository

logger = logging.getLogger(__name__)


class LessonRepository(VersionedRepository[Lesson]):
    """Data access for lessons, including batch-tag operations."""

    def __init__(self, db: Session):
        super().__init__(db, Lesson)
        self.logger = logging.getLogger(__name__)

    # Conflict queries

    def get_active_lessons_near(
        self,
        teacher_id: str,
        range_start: datetime,
        range_end: datetime,
        exclude_lesson_id: Optional[str] = None,
    ) -> List[Lesson]:
        """
        Non-cancelled lessons of a teacher that may overlap [range_start, range_end).

        Args:
            teacher_id: Teacher whose calendar is checked
            range_start: Window start (UTC)
            range_end: Window end (UTC)
            exclude_lesson_id: Lesson to leave out (e.g. the one being edited)
        """
        try:
            query = self.db.query(Lesson).filter(
                Lesson.teacher_id == teacher_id,
                Lesson.status.in_(ACTIVE_LESSON_STATUSES),
                Lesson.start_at >= range_start - timedelta(minutes=MAX_LESSON_DURATION),
                Lesson.start_at < range_end,
            )
            if exclude_lesson_id:
                query = query.filter(Lesson.id != exclude_lesson_id)
            return cast(List[Lesson], query.order_by(Lesson.start_at).all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting lessons for conflict check: {str(e)}")
            raise translate_db_error(e, "lesson conflict query")

    def get_active_at(self, teacher_id: str, start_at: datetime) -> Optional[Lesson]:
        """The non-cancelled lesson starting exactly at ``start_at``, if any."""
        try:
            return (
                self.db.query(Lesson)
                .filter(
                    Lesson.teacher_id == teacher_id,
                    Lesson.start_at == start_at,
                    Lesson.status != LessonStatus.CANCELLED.value,
                )
                .first()
            )
        except SQLAlchemyError as e:
            raise translate_db_error(e, "lesson existence check")

    def get_existing_start_times(
        self, teacher_id: str, student_id: str, starts: Sequence[datetime]
    ) -> set[datetime]:
        """Start instants among ``starts`` that already have a lesson, in any status."""
        if not starts:
            return set()
        try:
            rows = (
                self.db.query(Lesson.start_at)
                .filter(
                    Lesson.teacher_id == teacher_id,
                    Lesson.student_id == student_id,
                    Lesson.start_at.in_(list(starts)),
                )
                .all()
            )
        except SQLAlchemyError as e:
            raise translate_db_error(e, "existing occurrence lookup")
        return {row[0] for row in rows}

    # Range queries

    def get_teacher_lessons_in_range(
        self,
        teacher_id: str,
        range_start: datetime,
        range_end: datetime,
        statuses: Iterable[str] = (LessonStatus.SCHEDULED.value, LessonStatus.COMPLETED.value),
    ) -> List[Lesson]:
        """Lessons starting in [range_start, range_end), ordered by start."""
        return self._execute_query(
            self.db.query(Lesson)
            .filter(
                Lesson.teacher_id == teacher_id,
                Lesson.start_at >= range_start,
                Lesson.start_at < range_end,
                Lesson.status.in_(list(statuses)),
            )
            .order_by(Lesson.start_at)
        )

    def count_scheduled_in_range(
        self, teacher_id: str, range_start: datetime, range_end: datetime
    ) -> int:
        """SCHEDULED lessons overlapping [range_start, range_end)."""
        lessons = self.get_active_lessons_near(teacher_id, range_start, range_end)
        return sum(
            1
            for lesson in lessons
            if lesson.status == LessonStatus.SCHEDULED.value and lesson.end_at > range_start
        )

    def get_future_scheduled_for_slots(self, slot_ids: Sequence[str], now: datetime) -> List[Lesson]:
        """SCHEDULED lessons generated from any of ``slot_ids`` starting after ``now``."""
        if not slot_ids:
            return []
        return self._execute_query(
            self.db.query(Lesson)
            .filter(
                Lesson.recurring_slot_id.in_(list(slot_ids)),
                Lesson.status == LessonStatus.SCHEDULED.value,
                Lesson.start_at > now,
            )
            .order_by(Lesson.start_at)
        )

    # Batch operations

    def count_by_batch_tag(self, recurring_id: str) -> int:
        try:
            return self.db.query(Lesson).filter(Lesson.recurring_id == recurring_id).count()
        except SQLAlchemyError as e:
            raise translate_db_error(e, "batch count")

    def delete_by_batch_tag(self, recurring_id: str) -> int:
        """Delete every lesson sharing ``recurring_id``; returns the number removed."""
        try:
            return (
                self.db.query(Lesson)
                .filter(Lesson.recurring_id == recurring_id)
                .delete(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.logger.warning(f"Error deleting lesson batch {recurring_id}: {str(e)}")
            raise translate_db_error(e, "batch delete")
