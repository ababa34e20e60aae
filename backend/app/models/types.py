# backend/app/models/types.py
"""
Custom SQLAlchemy types that work across different database backends.
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import DateTime, TypeDecorator

if TYPE_CHECKING:
    from sqlalchemy.sql.type_api import TypeDecorator as _TypeDecorator

    TypeDecoratorProtocol = _TypeDecorator[Any]
else:
    TypeDecoratorProtocol = TypeDecorator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecoratorProtocol):
    """
    Timezone-aware UTC timestamp on every backend.

    PostgreSQL stores TIMESTAMPTZ. SQLite has no timezone support, so values
    are stored as naive UTC and re-tagged with UTC when read back.
    Naive values are rejected on the way in.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return value
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires timezone-aware datetimes")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
