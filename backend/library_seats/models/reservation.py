"""
Reservation model.

Key design decisions:
- Status is a plain string guarded by a CHECK constraint; transitions are
  owned by the lifecycle service, never by the model
- The four temp_release_* columns travel together (all set or all NULL),
  enforced by a CHECK constraint
- Composite index on (status, start_time) backs the violation sweep snapshot
- (user_id, status, updated_at) backs the trailing-24h cancellation count
"""

from enum import Enum

from sqlalchemy import Column, Integer, String, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from library_seats.db.base import Base, TimestampMixin
from library_seats.db.types import UTCDateTime


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    TEMPORARILY_RELEASED = "temporarily_released"
    EXPIRED = "expired"


TERMINAL_STATUSES = (
    ReservationStatus.COMPLETED.value,
    ReservationStatus.CANCELLED.value,
    ReservationStatus.EXPIRED.value,
)


class Reservation(Base, TimestampMixin):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    seat_id = Column(Integer, ForeignKey("seats.id"), nullable=False, index=True)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    status = Column(String(30), nullable=False, default=ReservationStatus.PENDING.value)
    check_in_time = Column(UTCDateTime, nullable=True)
    check_out_time = Column(UTCDateTime, nullable=True)
    notes = Column(String(500), nullable=True)

    # Temporary release
    temp_release_time = Column(UTCDateTime, nullable=True)
    temp_release_duration = Column(Integer, nullable=True)  # minutes
    temp_release_reason = Column(String(255), nullable=True)
    temp_release_expiry_time = Column(UTCDateTime, nullable=True)

    # Relationships
    user = relationship("User", back_populates="reservations")
    seat = relationship("Seat", back_populates="reservations")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_reservation_time_range"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed', "
            "'temporarily_released', 'expired')",
            name="check_reservation_status",
        ),
        CheckConstraint(
            "(temp_release_time IS NULL AND temp_release_duration IS NULL "
            "AND temp_release_reason IS NULL AND temp_release_expiry_time IS NULL) OR "
            "(temp_release_time IS NOT NULL AND temp_release_duration IS NOT NULL "
            "AND temp_release_reason IS NOT NULL AND temp_release_expiry_time IS NOT NULL)",
            name="check_temp_release_fields_together",
        ),
        CheckConstraint(
            "temp_release_duration IS NULL OR temp_release_duration BETWEEN 5 AND 120",
            name="check_temp_release_duration",
        ),
        Index("ix_reservations_status_start", "status", "start_time"),
        Index("ix_reservations_user_status_updated", "user_id", "status", "updated_at"),
    )

    def __repr__(self) -> str:
        return f"<Reservation(id={self.id}, user={self.user_id}, seat={self.seat_id}, status={self.status})>"
