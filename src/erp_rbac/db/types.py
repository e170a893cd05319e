"""Column types shared by the RBAC tables."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy.types import DateTime, TypeDecorator

__all__ = ["UTCDateTime"]


class UTCDateTime(TypeDecorator):
    """Timestamp column that only ever hands back aware UTC datetimes.

    SQLite has no timezone support, so values are normalised to UTC on the way
    in and re-tagged as UTC on the way out. Naive input is taken to be UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    @staticmethod
    def _as_utc(value: Any) -> Any:
        if not isinstance(value, datetime):
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_bind_param(self, value: Any, dialect: Any):
        return None if value is None else self._as_utc(value)

    def process_result_value(self, value: Any, dialect: Any):
        return None if value is None else self._as_utc(value)
