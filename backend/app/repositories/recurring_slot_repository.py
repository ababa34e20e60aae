# backend/app/repositories/recurring_slot_repository.py
"""Recurring Slot Repository for indefinite weekly subscriptions."""

import logging
from typing import List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database.errors import translate_db_error
from ..models.recurring_slot import RecurringSlot, RecurringSlotStatus
from .base_repository import VersionedRepository

logger = logging.getLogger(__name__)


class RecurringSlotRepository(VersionedRepository[RecurringSlot]):
    def __init__(self, db: Session):
        super().__init__(db, RecurringSlot)
        self.logger = logging.getLogger(__name__)

    def get_active_for_teacher(self, teacher_id: str) -> List[RecurringSlot]:
        return self._execute_query(
            self.db.query(RecurringSlot)
            .filter(
                RecurringSlot.teacher_id == teacher_id,
                RecurringSlot.status == RecurringSlotStatus.ACTIVE.value,
            )
            .order_by(RecurringSlot.day_of_week, RecurringSlot.start_time)
        )

    def get_active_for_student(self, student_id: str) -> List[RecurringSlot]:
        return self._execute_query(
            self.db.query(RecurringSlot).filter(
                RecurringSlot.student_id == student_id,
                RecurringSlot.status == RecurringSlotStatus.ACTIVE.value,
            )
        )

    def find_active_duplicate(
        self, teacher_id: str, day_of_week: int, start_time: str
    ) -> Optional[RecurringSlot]:
        """ACTIVE slot of the teacher already holding this weekday and start time."""
        try:
            return cast(
                Optional[RecurringSlot],
                self.db.query(RecurringSlot)
                .filter(
                    RecurringSlot.teacher_id == teacher_id,
                    RecurringSlot.day_of_week == day_of_week,
                    RecurringSlot.start_time == start_time,
                    RecurringSlot.status == RecurringSlotStatus.ACTIVE.value,
                )
                .first(),
            )
        except SQLAlchemyError as e:
            raise translate_db_error(e, "recurring slot duplicate check")
