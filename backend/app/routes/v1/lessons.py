# backend/app/routes/v1/lessons.py
"""
Lessons routes - API v1

Booking endpoints under /api/v1/lessons.
All business logic delegated to BookingEngine.

Endpoints:
    POST /book                 → Book one lesson, or a fixed weekly batch
    POST /{lesson_id}/cancel   → Cancel an upcoming lesson
"""

import asyncio
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.params import Path

from ...api.dependencies import get_booking_engine
from ...core.exceptions import DomainException
from ...schemas.scheduling import (
    BookLessonRequest,
    BookLessonResponse,
    CancelLessonRequest,
    LessonResponse,
)
from ...services.booking_engine import BookingEngine

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["lessons-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post(
    "/book",
    response_model=BookLessonResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Slot taken before commit"}},
)
async def book_lesson(
    payload: BookLessonRequest,
    engine: BookingEngine = Depends(get_booking_engine),
) -> BookLessonResponse:
    """Book a lesson.

    With ``recurring_weeks`` the same weekly slot is booked for that many
    weeks; either every week is booked or none is.
    """
    try:
        if payload.recurring_weeks is None:
            lesson = await asyncio.to_thread(
                engine.book_single,
                payload.teacher_id,
                payload.student_id,
                payload.start_at,
                payload.duration,
                payload.timezone,
            )
            lessons = [lesson]
        else:
            lessons = await asyncio.to_thread(
                engine.book_fixed_batch,
                payload.teacher_id,
                payload.student_id,
                payload.start_at,
                payload.duration,
                payload.recurring_weeks,
                payload.timezone,
            )
    except DomainException as exc:
        handle_domain_exception(exc)
    except Exception as e:
        logger.error("Unexpected error in book_lesson: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred booking the lesson",
        )

    return BookLessonResponse(
        lessons=[LessonResponse.model_validate(lesson.to_dict()) for lesson in lessons],
        recurring_id=lessons[0].recurring_id,
    )


@router.post("/{lesson_id}/cancel", response_model=LessonResponse)
async def cancel_lesson(
    lesson_id: str = Path(..., description="Lesson ULID", pattern=ULID_PATH_PATTERN),
    payload: Optional[CancelLessonRequest] = Body(None),
    engine: BookingEngine = Depends(get_booking_engine),
) -> LessonResponse:
    """Cancel an upcoming lesson; lessons that already started stay as they are."""
    payload = payload or CancelLessonRequest()
    try:
        lesson = await asyncio.to_thread(
            engine.cancel, lesson_id, payload.reason, payload.expected_version
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    except Exception as e:
        logger.error("Unexpected error in cancel_lesson: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred cancelling the lesson",
        )

    return LessonResponse.model_validate(lesson.to_dict())
