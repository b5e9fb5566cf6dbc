"""Portable column types: the same models run on PostgreSQL and on SQLite in tests."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy.dialects.postgresql import JSONB as PGJSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.dialects.sqlite import JSON as SQLiteJSON
from sqlalchemy.types import DateTime, String, TypeDecorator


def JSONBType(**kwargs):
    """JSONB on PostgreSQL, JSON text on SQLite."""
    return PGJSONB(**kwargs).with_variant(SQLiteJSON(), "sqlite")


class GUID(TypeDecorator):
    """Native UUID on PostgreSQL, 36-char string on SQLite; always ``uuid.UUID`` in Python."""

    impl = PGUUID
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(36))
        return dialect.type_descriptor(PGUUID(as_uuid=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if dialect.name == "sqlite" else value

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timestamp stored and returned as aware UTC.

    SQLite drops the offset, so naive values read back are UTC by construction.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return _to_utc(value) if value is not None else None

    def process_result_value(self, value, dialect):
        return _to_utc(value) if value is not None else None
