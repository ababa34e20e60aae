# backend/app/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.routing import APIRoute

from .core.config import settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION, BRAND_NAME
from .errors import register_error_handlers
from .routes import prometheus
from .routes.v1 import (
    health as health_v1,
    lessons as lessons_v1,
    recurring_slots as recurring_slots_v1,
    teachers as teachers_v1,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(f"Environment: {settings.environment}")
    if settings.is_sqlite:
        logger.info("Using SQLite database backend")
    yield
    logger.info(f"{BRAND_NAME} API shutting down...")


def _unique_operation_id(route: APIRoute) -> str:
    methods = "_".join(sorted(m.lower() for m in route.methods or []))
    path = route.path_format.replace("/", "_").replace("{", "").replace("}", "").strip("_")
    name = (route.name or "operation").lower().replace(" ", "_")
    return f"{methods}__{path}__{name}".strip("_")


def create_app() -> FastAPI:
    """Build the application with every router and error handler mounted."""
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
        generate_unique_id_function=_unique_operation_id,
    )
    # Register unified error envelope handlers
    register_error_handlers(app)

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(teachers_v1.router, prefix="/teachers")
    api_v1.include_router(lessons_v1.router, prefix="/lessons")
    api_v1.include_router(recurring_slots_v1.router, prefix="/recurring-slots")
    api_v1.include_router(health_v1.router, prefix="/health")
    app.include_router(api_v1)

    # Infrastructure routes (unversioned)
    app.include_router(prometheus.router)
    return app


app = create_app()
