# backend/app/routes/v1/teachers.py
"""
Teacher calendar routes - API v1

Read-side endpoints under /api/v1/teachers.

Endpoints:
    GET /{teacher_id}/available-slots  → Slot candidates for a date range
    GET /{teacher_id}/schedule         → Booked lessons for a date range (backfills recurring slots)
"""

import asyncio
from datetime import date
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...api.dependencies import get_recurring_slot_manager, get_slot_generator
from ...core.exceptions import DomainException
from ...schemas.scheduling import (
    AvailableSlotsResponse,
    LessonResponse,
    ScheduleResponse,
    TimeSlotResponse,
)
from ...services.recurring_slot_manager import RecurringSlotManager
from ...services.slot_generator import SlotGenerator
from .lessons import handle_domain_exception

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["teachers-v1"])


@router.get("/{teacher_id}/available-slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    teacher_id: str,
    start_date: date = Query(..., description="First local date (teacher's timezone)"),
    end_date: date = Query(..., description="Last local date, inclusive"),
    timezone: Optional[str] = Query(None, description="Timezone to express slot times in"),
    slot_generator: SlotGenerator = Depends(get_slot_generator),
) -> AvailableSlotsResponse:
    """List every slot candidate, flagging the ones that can be booked."""
    try:
        slots = await asyncio.to_thread(
            slot_generator.get_available_slots, teacher_id, start_date, end_date, timezone
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    except Exception as e:
        logger.error("Unexpected error in get_available_slots: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred computing available slots",
        )

    return AvailableSlotsResponse(
        teacher_id=teacher_id,
        start_date=start_date,
        end_date=end_date,
        timezone=timezone,
        slots=[TimeSlotResponse.model_validate(slot.to_dict()) for slot in slots],
    )


@router.get("/{teacher_id}/schedule", response_model=ScheduleResponse)
async def get_schedule(
    teacher_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    manager: RecurringSlotManager = Depends(get_recurring_slot_manager),
) -> ScheduleResponse:
    """Scheduled and completed lessons in the range, oldest first."""
    try:
        lessons = await asyncio.to_thread(manager.get_schedule, teacher_id, start_date, end_date)
    except DomainException as exc:
        handle_domain_exception(exc)
    except Exception as e:
        logger.error("Unexpected error in get_schedule: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred retrieving the schedule",
        )

    return ScheduleResponse(
        teacher_id=teacher_id,
        start_date=start_date,
        end_date=end_date,
        lessons=[LessonResponse.model_validate(lesson.to_dict()) for lesson in lessons],
    )
