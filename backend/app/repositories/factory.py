# backend/app/repositories/factory.py
"""
Repository Factory for the scheduling core.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .availability_repository import AvailabilityRepository
    from .lesson_repository import LessonRepository
    from .recurring_slot_repository import RecurringSlotRepository
    from .teacher_repository import TeacherRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_teacher_repository(db: Session) -> "TeacherRepository":
        """Create repository for teacher, student and lesson settings reads."""
        from .teacher_repository import TeacherRepository

        return TeacherRepository(db)

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        """Create repository for availability windows and blocked times."""
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)

    @staticmethod
    def create_lesson_repository(db: Session) -> "LessonRepository":
        """Create repository for lesson operations."""
        from .lesson_repository import LessonRepository

        return LessonRepository(db)

    @staticmethod
    def create_recurring_slot_repository(db: Session) -> "RecurringSlotRepository":
        """Create repository for recurring slot operations."""
        from .recurring_slot_repository import RecurringSlotRepository

        return RecurringSlotRepository(db)
