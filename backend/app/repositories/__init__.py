# backend/app/repositories/__init__.py
"""
Repository Pattern Implementation for the scheduling core.

This package provides the repository layer for data access,
separating business logic from database queries.

Key Components:
- BaseRepository: Foundation for all repositories with lookup and creation
- VersionedRepository: BaseRepository plus compare-and-set updates on ``version``
- RepositoryFactory: Factory for creating repository instances
- LessonRepository / RecurringSlotRepository: versioned scheduling aggregates
- AvailabilityRepository: weekly windows and blocked times
- TeacherRepository: teacher, student and lesson settings reads

Usage:
    from app.repositories import RepositoryFactory

    # In a service:
    lessons = RepositoryFactory.create_lesson_repository(db)
    taken = lessons.get_active_at(teacher_id, start_at)
"""

from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository, IRepository, IVersionedRepository, VersionedRepository
from .factory import RepositoryFactory
from .lesson_repository import LessonRepository
from .recurring_slot_repository import RecurringSlotRepository
from .teacher_repository import TeacherRepository

__all__ = [
    "AvailabilityRepository",
    "BaseRepository",
    "IRepository",
    "IVersionedRepository",
    "LessonRepository",
    "RecurringSlotRepository",
    "RepositoryFactory",
    "TeacherRepository",
    "VersionedRepository",
]
