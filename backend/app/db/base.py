"""
Declarative base, shared timestamp columns and the timezone-aware
DateTime type used for every instant in the schema.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, func
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from app.core.clock import local_timezone


class AwareDateTime(TypeDecorator):
    """
    Stores instants as UTC and hands them back in the local UTC+3 offset.

    PostgreSQL keeps the offset natively (timestamptz); SQLite drops it, so
    values are normalized to UTC on the way in and re-tagged on the way out.
    Naive values are rejected: every instant must say where it is.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"naive datetime {value!r} cannot be stored")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(local_timezone())


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at = Column(AwareDateTime(), nullable=False, server_default=func.now())
    updated_at = Column(
        AwareDateTime(),
        nullable=False,
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
    )
