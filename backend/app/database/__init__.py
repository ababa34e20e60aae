"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from app.core.config import settings

logger = logging.getLogger(__name__)

# PostgreSQL pool tuning:
# - pool_pre_ping + pool_recycle drop stale connections after server restarts.
# - statement_timeout caps runaway queries; units of work add their own
#   SET LOCAL timeouts on top (see services.transaction_coordinator).
_PG_CONNECT_ARGS: dict[str, Any] = {
    "keepalives": 1,
    "keepalives_idle": 15,
    "keepalives_interval": 5,
    "keepalives_count": 3,
    "options": "-c statement_timeout=30000",
    "connect_timeout": 5,
    "application_name": "lessonbook_scheduling",
}


def _build_engine_kwargs(db_url: str) -> dict[str, Any]:
    """Engine options for the configured dialect."""
    if db_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}, "future": True}

    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_recycle": settings.db_pool_recycle,
        "pool_pre_ping": True,
        "future": True,
        "connect_args": dict(_PG_CONNECT_ARGS),
    }


def build_engine(db_url: str) -> Engine:
    """Create an engine and attach pool logging."""
    new_engine = create_engine(db_url, **_build_engine_kwargs(db_url))

    @event.listens_for(new_engine, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info["connect_time"] = datetime.now()
        logger.debug("Database connection established")

    @event.listens_for(new_engine, "checkout")
    def receive_checkout(
        dbapi_connection: Any, connection_record: Any, connection_proxy: Any
    ) -> None:
        logger.debug("Connection checked out from pool")

    return new_engine


engine: Engine = build_engine(settings.get_database_url())

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Request-scoped session.

    Services own their transaction boundaries through the
    TransactionCoordinator; anything left open here is rolled back.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        if db.in_transaction():
            db.rollback()
        db.close()


__all__ = [
    "Base",
    "SessionLocal",
    "build_engine",
    "engine",
    "get_db",
]
