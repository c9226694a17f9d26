"""
Pydantic schemas for violation ledger requests and responses.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from library_seats.models.violation import Violation, ViolationType, Severity
from library_seats.services.violation_text import render_description, render_penalty


class ViolationCreate(BaseModel):
    user_id: int
    type: ViolationType
    description: str = Field(..., min_length=1, max_length=1000)
    penalty: str = Field(..., min_length=1, max_length=255)
    reservation_id: Optional[int] = None
    severity: Optional[Severity] = None


class ViolationResponse(BaseModel):
    id: int
    user_id: int
    reservation_id: Optional[int]
    type: ViolationType
    rule_id: Optional[str]
    severity: Optional[Severity]
    description: str
    penalty: str
    penalty_code: Optional[str]
    details: dict
    is_resolved: bool
    created_at: datetime
    resolved_at: Optional[datetime]
    resolved_by: Optional[int]

    @classmethod
    def from_violation(cls, violation: Violation) -> "ViolationResponse":
        return cls(
            id=violation.id,
            user_id=violation.user_id,
            reservation_id=violation.reservation_id,
            type=violation.type,
            rule_id=violation.rule_id,
            severity=violation.severity,
            description=render_description(violation),
            penalty=render_penalty(violation),
            penalty_code=violation.penalty if violation.rule_id else None,
            details=violation.details or {},
            is_resolved=violation.is_resolved,
            created_at=violation.created_at,
            resolved_at=violation.resolved_at,
            resolved_by=violation.resolved_by,
        )
