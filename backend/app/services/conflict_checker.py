# backend/app/services/conflict_checker.py
"""
Conflict Checker Service for the scheduling core

Handles all conflict detection:
- The half-open interval overlap predicate shared by every check
- Lesson overlap for commit-time re-validation
- Blocked-time overlap
- Busy intervals consumed by slot generation

Every overlap decision in the codebase goes through ``intervals_overlap``.
"""

from datetime import datetime
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..models.availability import BlockedTime
from ..models.lesson import Lesson
from ..repositories import RepositoryFactory
from ..repositories.availability_repository import AvailabilityRepository
from ..repositories.lesson_repository import LessonRepository
from .base import BaseService

logger = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime]


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """[start_a, end_a) and [start_b, end_b) share at least one instant."""
    return start_a < end_b and start_b < end_a


def overlaps_any(start: datetime, end: datetime, intervals: Iterable[Interval]) -> bool:
    return any(intervals_overlap(start, end, busy_start, busy_end) for busy_start, busy_end in intervals)


class ConflictChecker(BaseService):
    """
    Service for checking scheduling conflicts.

    Used by slot generation for availability flags and by the booking
    engine to re-validate inside the booking transaction.
    """

    def __init__(
        self,
        db: Session,
        lesson_repository: Optional[LessonRepository] = None,
        availability_repository: Optional[AvailabilityRepository] = None,
    ):
        super().__init__(db)
        self.logger = logging.getLogger(__name__)
        self.lesson_repository = lesson_repository or RepositoryFactory.create_lesson_repository(db)
        self.availability_repository = (
            availability_repository or RepositoryFactory.create_availability_repository(db)
        )

    def find_lesson_conflicts(
        self,
        teacher_id: str,
        start_at: datetime,
        end_at: datetime,
        exclude_lesson_id: Optional[str] = None,
    ) -> List[Lesson]:
        """
        Non-cancelled lessons of the teacher overlapping [start_at, end_at).

        Args:
            teacher_id: The teacher to check
            start_at: Start of the requested interval (UTC)
            end_at: End of the requested interval (UTC)
            exclude_lesson_id: Optional lesson to leave out

        Returns:
            Conflicting lessons ordered by start
        """
        candidates = self.lesson_repository.get_active_lessons_near(
            teacher_id, start_at, end_at, exclude_lesson_id
        )
        conflicts = [
            lesson
            for lesson in candidates
            if intervals_overlap(start_at, end_at, lesson.start_at, lesson.end_at)
        ]
        if conflicts:
            self.logger.debug(
                f"Found {len(conflicts)} lesson conflicts for {teacher_id} "
                f"between {start_at.isoformat()}-{end_at.isoformat()}"
            )
        return conflicts

    def find_blocked_time_conflicts(
        self, teacher_id: str, start_at: datetime, end_at: datetime
    ) -> List[BlockedTime]:
        blocked = self.availability_repository.get_blocked_times_in_range(teacher_id, start_at, end_at)
        return [
            item for item in blocked if intervals_overlap(start_at, end_at, item.start_at, item.end_at)
        ]

    def get_busy_intervals(
        self, teacher_id: str, range_start: datetime, range_end: datetime
    ) -> Tuple[List[Interval], List[Interval]]:
        """
        Blocked and booked intervals touching [range_start, range_end).

        Returns:
            (blocked intervals, lesson intervals), each as (start, end) pairs
        """
        blocked = [
            (item.start_at, item.end_at)
            for item in self.availability_repository.get_blocked_times_in_range(
                teacher_id, range_start, range_end
            )
        ]
        booked = [
            (lesson.start_at, lesson.end_at)
            for lesson in self.lesson_repository.get_active_lessons_near(
                teacher_id, range_start, range_end
            )
        ]
        return blocked, booked

    @BaseService.measure_operation("check_scheduling_conflicts")
    def check_scheduling_conflicts(
        self, teacher_id: str, start_at: datetime, end_at: datetime
    ) -> Dict[str, Any]:
        """
        Summarize what occupies a window.

        Returns:
            Dict with ``scheduled_lessons``, ``blocked_times`` and ``has_conflicts``
        """
        scheduled = self.lesson_repository.count_scheduled_in_range(teacher_id, start_at, end_at)
        blocked = len(self.find_blocked_time_conflicts(teacher_id, start_at, end_at))
        return {
            "teacher_id": teacher_id,
            "start_at": start_at.isoformat(),
            "end_at": end_at.isoformat(),
            "scheduled_lessons": scheduled,
            "blocked_times": blocked,
            "has_conflicts": bool(scheduled or blocked),
        }
