"""
Translation of driver errors into structured repository errors.

The retry decision belongs to the storage adapter: each failure is
classified from driver error codes (PostgreSQL SQLSTATE, SQLite primary
result codes) and SQLAlchemy's own connection signals, never from the
message text.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)

from ..core.exceptions import RepositoryException, StoreErrorKind

logger = logging.getLogger(__name__)

_PG_DEADLOCK = "40P01"
_PG_SERIALIZATION_FAILURE = "40001"
_PG_TIMEOUT_CODES = frozenset({"57014", "55P03"})  # query_canceled, lock_not_available
_PG_CONNECTION_CLASS = "08"
_PG_SHUTDOWN_CODES = frozenset({"57P01", "57P02", "57P03"})

# sqlite3 primary result codes (extended codes are masked with & 0xFF)
_SQLITE_BUSY = 5
_SQLITE_LOCKED = 6
_SQLITE_CONSTRAINT = 19


def _sqlstate(orig: Any) -> Optional[str]:
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code if isinstance(code, str) else None


def _sqlite_code(orig: Any) -> Optional[int]:
    code = getattr(orig, "sqlite_errorcode", None)
    return code & 0xFF if isinstance(code, int) else None


def classify_db_error(exc: BaseException) -> StoreErrorKind:
    """Map a SQLAlchemy/driver error onto a StoreErrorKind."""
    if isinstance(exc, IntegrityError):
        return StoreErrorKind.INTEGRITY
    if isinstance(exc, (PoolTimeoutError, DisconnectionError)):
        return StoreErrorKind.CONNECTION
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return StoreErrorKind.CONNECTION

        orig = exc.orig
        sqlstate = _sqlstate(orig)
        if sqlstate:
            if sqlstate == _PG_DEADLOCK:
                return StoreErrorKind.DEADLOCK
            if sqlstate == _PG_SERIALIZATION_FAILURE:
                return StoreErrorKind.SERIALIZATION
            if sqlstate in _PG_TIMEOUT_CODES:
                return StoreErrorKind.TIMEOUT
            if sqlstate.startswith(_PG_CONNECTION_CLASS) or sqlstate in _PG_SHUTDOWN_CODES:
                return StoreErrorKind.CONNECTION
            if sqlstate.startswith("23"):
                return StoreErrorKind.INTEGRITY

        sqlite_code = _sqlite_code(orig)
        if sqlite_code in (_SQLITE_BUSY, _SQLITE_LOCKED):
            return StoreErrorKind.TIMEOUT
        if sqlite_code == _SQLITE_CONSTRAINT:
            return StoreErrorKind.INTEGRITY
    return StoreErrorKind.OTHER


def translate_db_error(exc: SQLAlchemyError, operation: str = "database operation") -> RepositoryException:
    """Wrap ``exc`` in a RepositoryException carrying its kind and retry flag."""
    kind = classify_db_error(exc)
    translated = RepositoryException(f"{operation} failed: {exc}", kind=kind)
    translated.__cause__ = exc
    if translated.retryable:
        logger.debug("Classified %s as retryable (%s)", type(exc).__name__, kind.value)
    return translated
