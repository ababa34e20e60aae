# backend/app/routes/v1/health.py
"""
Health check endpoints for monitoring and load balancer probes.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, Response, status

from app.api.dependencies import get_transaction_coordinator
from app.schemas.scheduling import DatabaseHealthResponse
from app.services.transaction_coordinator import TransactionCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/db", response_model=DatabaseHealthResponse)
async def database_health(
    response: Response,
    coordinator: TransactionCoordinator = Depends(get_transaction_coordinator),
) -> DatabaseHealthResponse:
    """
    Round-trip the database under the health-check preset.

    Responds 503 when the store is unreachable so probes can act on it.
    """
    result = await asyncio.to_thread(coordinator.health_check)
    if not result["healthy"]:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return DatabaseHealthResponse(
        status="healthy" if result["healthy"] else "unhealthy",
        **result,
    )
