"""
Pydantic schemas for the violation detector admin surface.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from library_seats.models.violation import ViolationType, Severity


class RuleResponse(BaseModel):
    id: str
    name: str
    description: str
    type: ViolationType
    enabled: bool
    severity: Severity
    auto_resolve: bool

    model_config = {"from_attributes": True}


class RuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    enabled: Optional[bool] = None
    severity: Optional[Severity] = None
    auto_resolve: Optional[bool] = None


class DetectionStatus(BaseModel):
    is_running: bool
    interval_ms: Optional[int]
    rules_count: int
    enabled_rules_count: int
    last_sweep_at: Optional[datetime]
    last_sweep_violations: int


class DetectionStart(BaseModel):
    interval_ms: Optional[int] = Field(None, ge=1000)


class SweepResponse(BaseModel):
    skipped: bool = False
    sweep_id: Optional[str] = None
    candidates: int = 0
    recorded: list[int] = []
    duplicates: int = 0
    remediated: int = 0
    errors: int = 0
    temp_released_cancelled: list[int] = []
    pending_expired: list[int] = []
