"""
Declarative base and shared mixins for all ORM models.
"""

from sqlalchemy import Column
from sqlalchemy.orm import declarative_base

from library_seats.db.types import UTCDateTime, utcnow

Base = declarative_base()


class TimestampMixin:
    """created_at / updated_at columns stamped from the application clock."""

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
