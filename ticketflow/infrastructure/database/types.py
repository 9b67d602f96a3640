"""Database-agnostic column types.

These work with both PostgreSQL (production) and SQLite (tests).
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime
from sqlalchemy.types import TypeDecorator

# JSON instead of JSONB for cross-database compatibility
JSONType = JSON


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that is always stored and returned as UTC.

    SQLite has no timezone support and hands back naive values, so results
    are re-tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
