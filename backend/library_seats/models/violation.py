"""
Violation model - the ledger row.

Key design decisions:
- Rows are never deleted; resolution only sets is_resolved/resolved_at/resolved_by
- Engine-created rows keep rule_id, penalty code and structured details;
  human text is rendered at the API boundary
- Index on (user_id, type, created_at) backs sweep deduplication
"""

from enum import Enum

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, JSON, Index, CheckConstraint
from sqlalchemy.orm import relationship

from library_seats.db.base import Base
from library_seats.db.types import UTCDateTime, utcnow


class ViolationType(str, Enum):
    NO_SHOW = "no_show"
    OVERSTAY = "overstay"
    LATE_CHECKIN = "late_checkin"
    FREQUENT_CANCELLATION = "frequent_cancellation"
    UNAUTHORIZED_EXTENSION = "unauthorized_extension"
    UNAUTHORIZED_USE = "unauthorized_use"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Violation(Base):
    __tablename__ = "violations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True, index=True)
    type = Column(String(30), nullable=False)
    rule_id = Column(String(50), nullable=True)
    severity = Column(String(10), nullable=True)
    details = Column(JSON, nullable=False, default=dict)
    description = Column(String(1000), nullable=True)
    penalty = Column(String(255), nullable=False)
    is_resolved = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    resolved_at = Column(UTCDateTime, nullable=True)
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    user = relationship("User", back_populates="violations", foreign_keys=[user_id])

    __table_args__ = (
        CheckConstraint(
            "type IN ('no_show', 'overstay', 'late_checkin', 'frequent_cancellation', "
            "'unauthorized_extension', 'unauthorized_use')",
            name="check_violation_type",
        ),
        Index("ix_violations_user_type_created", "user_id", "type", "created_at"),
        Index("ix_violations_unresolved", "is_resolved"),
    )

    def __repr__(self) -> str:
        return f"<Violation(id={self.id}, user={self.user_id}, type={self.type}, resolved={self.is_resolved})>"
