"""
Column helpers shared by the registry model and the tenant table layout.

Both have to work on PostgreSQL and on SQLite files, so JSON payloads and
timestamps go through the types defined here.
"""

import uuid
from datetime import UTC, datetime

from pydantic_core import from_json, to_json, to_jsonable_python
from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_uuid() -> str:
    return str(uuid.uuid4())


class JSON(TypeDecorator):
    """JSONB on PostgreSQL; a JSON document in a TEXT column on SQLite."""

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        native = JSONB() if dialect.name == "postgresql" else Text()
        return dialect.type_descriptor(native)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            # psycopg2 serializes plain Python structures itself
            return to_jsonable_python(value)
        return to_json(value).decode()

    def process_result_value(self, value, dialect):
        if value is None or dialect.name == "postgresql":
            return value
        return from_json(value)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)


class UUIDMixin:
    """String UUID primary key, generated client-side."""

    id = Column(String(36), primary_key=True, default=new_uuid)
