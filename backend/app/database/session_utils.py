"""
Helpers for working with SQLAlchemy sessions in a dialect-agnostic way.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session

# Isolation levels each dialect accepts through execution_options.
# Dialects not listed here are assumed to accept the standard four.
_DIALECT_ISOLATION_LEVELS: dict[str, frozenset[str]] = {
    "sqlite": frozenset({"SERIALIZABLE", "READ UNCOMMITTED"}),
}

_STANDARD_ISOLATION_LEVELS = frozenset(
    {"READ UNCOMMITTED", "READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE"}
)


def resolve_session_bind(session: Session) -> Optional[Connection | Engine]:
    """Return the engine/connection bound to a session without direct .bind access."""
    try:
        bind = session.get_bind()
        if bind is not None:
            return bind
    except Exception:
        bind = None

    try:
        insp = inspect(session)
    except Exception:
        return None

    return getattr(insp, "bind", None)


def get_dialect_name(session: Session, default: str = "sqlite") -> str:
    """
    Return SQLAlchemy dialect name without touching Session.bind directly.

    Falls back to ``default`` when the bound engine cannot be resolved.
    """
    bind = resolve_session_bind(session)
    if bind is None:
        return default
    dialect = getattr(bind, "dialect", None)
    name = getattr(dialect, "name", None)
    return name if isinstance(name, str) and name else default


def supports_isolation_level(dialect_name: str, level: str) -> bool:
    """Whether ``level`` can be requested on a connection of ``dialect_name``."""
    supported = _DIALECT_ISOLATION_LEVELS.get(dialect_name, _STANDARD_ISOLATION_LEVELS)
    return level in supported


def has_pending_changes(session: Session) -> bool:
    """True when the session holds unflushed adds, updates or deletes."""
    return bool(session.new or session.dirty or session.deleted)
