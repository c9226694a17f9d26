"""
User model. Identity is owned by the upstream auth gateway; this service
only tracks the violation counter and the booking ban.
"""

from enum import Enum

from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint
from sqlalchemy.orm import relationship

from library_seats.db.base import Base, TimestampMixin


class UserRole(str, Enum):
    ADMIN = "admin"
    STUDENT = "student"
    TEACHER = "teacher"


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False, default="")
    email = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.STUDENT.value)
    violation_count = Column(Integer, nullable=False, default=0)
    is_banned = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    reservations = relationship("Reservation", back_populates="user")
    violations = relationship("Violation", back_populates="user", foreign_keys="Violation.user_id")

    __table_args__ = (
        CheckConstraint("violation_count >= 0", name="check_violation_count_non_negative"),
        CheckConstraint("role IN ('admin', 'student', 'teacher')", name="check_user_role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username}, violations={self.violation_count})>"
