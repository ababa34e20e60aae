# backend/app/models/teacher.py
"""
Teacher and student records as seen by the scheduling core.

Profiles are owned by the account layer; the core only reads a teacher's
timezone and whether a student is assigned to that teacher.
"""

import logging

from sqlalchemy import Column, ForeignKey, Index, String
from sqlalchemy.orm import relationship

from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime, utc_now

logger = logging.getLogger(__name__)


class Teacher(Base):
    """A teacher who publishes availability and receives bookings."""

    __tablename__ = "teachers"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    timezone = Column(String(64), nullable=False, default="America/Chicago")
    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)

    students = relationship("Student", back_populates="teacher")
    lesson_settings = relationship(
        "LessonSettings", back_populates="teacher", uselist=False, cascade="all, delete-orphan"
    )
    availability_windows = relationship(
        "AvailabilityWindow", back_populates="teacher", cascade="all, delete-orphan"
    )
    blocked_times = relationship("BlockedTime", back_populates="teacher", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Teacher {self.id} tz={self.timezone}>"


class Student(Base):
    """A student assigned to exactly one teacher."""

    __tablename__ = "students"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    teacher_id = Column(String(26), ForeignKey("teachers.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)

    teacher = relationship("Teacher", back_populates="students")

    __table_args__ = (Index("ix_students_teacher_id", "teacher_id"),)

    def __repr__(self) -> str:
        return f"<Student {self.id} teacher={self.teacher_id}>"
