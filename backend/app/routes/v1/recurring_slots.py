# backend/app/routes/v1/recurring_slots.py
"""
Recurring slot routes - API v1

Indefinite weekly subscriptions under /api/v1/recurring-slots.

Endpoints:
    POST /                    → Start a subscription and book its first weeks
    POST /{slot_id}/cancel    → End a subscription
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.params import Path

from ...api.dependencies import get_recurring_slot_manager
from ...core.exceptions import DomainException
from ...schemas.scheduling import (
    CancelRecurringSlotRequest,
    CreateRecurringSlotRequest,
    CreateRecurringSlotResponse,
    LessonResponse,
    RecurringSlotResponse,
)
from ...services.recurring_slot_manager import RecurringSlotManager
from .lessons import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recurring-slots-v1"])


@router.post(
    "",
    response_model=CreateRecurringSlotResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_recurring_slot(
    payload: CreateRecurringSlotRequest,
    manager: RecurringSlotManager = Depends(get_recurring_slot_manager),
) -> CreateRecurringSlotResponse:
    try:
        slot, lessons = await asyncio.to_thread(
            manager.create_indefinite,
            payload.teacher_id,
            payload.student_id,
            payload.day_of_week,
            payload.start_time,
            payload.duration,
            payload.timezone,
            payload.starting_from,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    except Exception as e:
        logger.error("Unexpected error in create_recurring_slot: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred creating the recurring slot",
        )

    return CreateRecurringSlotResponse(
        slot=RecurringSlotResponse.model_validate(slot.to_dict()),
        lessons=[LessonResponse.model_validate(lesson.to_dict()) for lesson in lessons],
    )


@router.post("/{slot_id}/cancel", response_model=RecurringSlotResponse)
async def cancel_recurring_slot(
    slot_id: str = Path(..., description="Recurring slot ULID", pattern=ULID_PATH_PATTERN),
    payload: Optional[CancelRecurringSlotRequest] = Body(None),
    manager: RecurringSlotManager = Depends(get_recurring_slot_manager),
) -> RecurringSlotResponse:
    """Cancel the subscription; lessons already booked from it are kept."""
    payload = payload or CancelRecurringSlotRequest()
    try:
        slot = await asyncio.to_thread(manager.cancel_slot, slot_id, payload.expected_version)
    except DomainException as exc:
        handle_domain_exception(exc)
    except Exception as e:
        logger.error("Unexpected error in cancel_recurring_slot: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred cancelling the recurring slot",
        )

    return RecurringSlotResponse.model_validate(slot.to_dict())
