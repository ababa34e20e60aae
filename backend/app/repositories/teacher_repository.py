# backend/app/repositories/teacher_repository.py
"""
Teacher Repository: read access to the collaborator-owned records the
scheduling core depends on (teacher timezone, lesson settings, and the
teacher-student relationship).
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database.errors import translate_db_error
from ..models.lesson_settings import LessonSettings
from ..models.teacher import Student, Teacher
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TeacherRepository(BaseRepository[Teacher]):
    def __init__(self, db: Session):
        super().__init__(db, Teacher)
        self.logger = logging.getLogger(__name__)

    def get_lesson_settings(self, teacher_id: str) -> Optional[LessonSettings]:
        try:
            return (
                self.db.query(LessonSettings).filter(LessonSettings.teacher_id == teacher_id).first()
            )
        except SQLAlchemyError as e:
            raise translate_db_error(e, "lesson settings lookup")

    def upsert_lesson_settings(self, teacher_id: str, **values) -> LessonSettings:
        """Create or replace the single settings row of a teacher."""
        try:
            current = self.get_lesson_settings(teacher_id)
            if current is None:
                current = LessonSettings(teacher_id=teacher_id, **values)
                self.db.add(current)
            else:
                for key, value in values.items():
                    setattr(current, key, value)
            self.db.flush()
            return current
        except SQLAlchemyError as e:
            self.logger.error(f"Error saving lesson settings for {teacher_id}: {str(e)}")
            raise translate_db_error(e, "lesson settings save")

    def has_student(self, teacher_id: str, student_id: str) -> bool:
        """Whether ``student_id`` is assigned to ``teacher_id``."""
        try:
            return (
                self.db.query(Student.id)
                .filter(Student.id == student_id, Student.teacher_id == teacher_id)
                .first()
                is not None
            )
        except SQLAlchemyError as e:
            raise translate_db_error(e, "relationship check")
