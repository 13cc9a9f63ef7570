"""
Declarative base and shared column mixins.
"""

from sqlalchemy import Column, func
from sqlalchemy.orm import DeclarativeBase

from fitstudio.db.types import UTCDateTime


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    # Server-generated values are fetched on flush so they are readable
    # without a lazy load in async code.
    __mapper_args__ = {"eager_defaults": True}

    created_at = Column(UTCDateTime(), nullable=False, server_default=func.now())
    updated_at = Column(
        UTCDateTime(),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
