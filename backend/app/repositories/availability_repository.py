# backend/app/repositories/availability_repository.py
"""
Availability Repository for the scheduling core.

Handles weekly availability windows and one-off blocked times.
"""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database.errors import translate_db_error
from ..models.availability import AvailabilityWindow, BlockedTime
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[AvailabilityWindow]):
    def __init__(self, db: Session):
        """Initialize with AvailabilityWindow model as primary."""
        super().__init__(db, AvailabilityWindow)
        self.logger = logging.getLogger(__name__)

    # Weekly windows

    def get_weekly_windows(self, teacher_id: str) -> List[AvailabilityWindow]:
        return self._execute_query(
            self.db.query(AvailabilityWindow)
            .filter(
                AvailabilityWindow.teacher_id == teacher_id,
                AvailabilityWindow.is_active.is_(True),
            )
            .order_by(AvailabilityWindow.day_of_week, AvailabilityWindow.start_time)
        )

    def replace_weekly_windows(
        self, teacher_id: str, windows: Sequence[Dict[str, Any]]
    ) -> List[AvailabilityWindow]:
        """Delete every window of the teacher and insert ``windows`` in its place."""
        try:
            self.db.query(AvailabilityWindow).filter(
                AvailabilityWindow.teacher_id == teacher_id
            ).delete(synchronize_session=False)
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error clearing availability for {teacher_id}: {str(e)}")
            raise translate_db_error(e, "availability replace")
        return self.bulk_create([dict(window, teacher_id=teacher_id) for window in windows])

    # Blocked times

    def get_blocked_times_in_range(
        self, teacher_id: str, range_start: datetime, range_end: datetime
    ) -> List[BlockedTime]:
        """Blocked times overlapping [range_start, range_end)."""
        try:
            return (
                self.db.query(BlockedTime)
                .filter(
                    BlockedTime.teacher_id == teacher_id,
                    BlockedTime.start_at < range_end,
                    BlockedTime.end_at > range_start,
                )
                .order_by(BlockedTime.start_at)
                .all()
            )
        except SQLAlchemyError as e:
            raise translate_db_error(e, "blocked time query")

    def create_blocked_time(self, **values) -> BlockedTime:
        try:
            blocked = BlockedTime(**values)
            self.db.add(blocked)
            self.db.flush()
            return blocked
        except SQLAlchemyError as e:
            self.logger.warning(f"Error creating blocked time: {str(e)}")
            raise translate_db_error(e, "blocked time create")

    def get_blocked_time(self, blocked_time_id: str) -> Optional[BlockedTime]:
        try:
            return self.db.query(BlockedTime).filter(BlockedTime.id == blocked_time_id).first()
        except SQLAlchemyError as e:
            raise translate_db_error(e, "blocked time lookup")

    def delete_blocked_time(self, blocked_time: BlockedTime) -> None:
        try:
            self.db.delete(blocked_time)
            self.db.flush()
        except SQLAlchemyError as e:
            raise translate_db_error(e, "blocked time delete")
