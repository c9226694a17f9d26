"""
Seat model.

Key design decisions:
- `status` is written only through the seat registry; the lifecycle
  controller decides which status a transition implies
- Location metadata (area, floor, row, col) is immutable outside admin tools
- Composite index on (area, floor) backs the seat map listing
"""

from enum import Enum

from sqlalchemy import Column, Integer, String, Boolean, JSON, Index, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship

from library_seats.db.base import Base, TimestampMixin


class SeatStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"
    TEMPORARILY_RELEASED = "temporarily_released"


class SeatFeature(str, Enum):
    POWER = "power"
    WINDOW = "window"
    NEAR_EXIT = "near_exit"


class Seat(Base, TimestampMixin):
    __tablename__ = "seats"

    id = Column(Integer, primary_key=True, index=True)
    number = Column(String(50), nullable=False)
    area = Column(String(50), nullable=False)
    floor = Column(Integer, nullable=False)
    row = Column(Integer, nullable=False)
    col = Column(Integer, nullable=False)
    status = Column(String(30), nullable=False, default=SeatStatus.AVAILABLE.value)
    is_reservable = Column(Boolean, nullable=False, default=True)
    features = Column(JSON, nullable=False, default=list)

    reservations = relationship("Reservation", back_populates="seat")

    __table_args__ = (
        UniqueConstraint("number", name="uq_seat_number"),
        CheckConstraint(
            "status IN ('available', 'occupied', 'reserved', 'maintenance', 'temporarily_released')",
            name="check_seat_status",
        ),
        Index("ix_seats_area_floor", "area", "floor"),
    )

    def __repr__(self) -> str:
        return f"<Seat(id={self.id}, number={self.number}, status={self.status})>"
