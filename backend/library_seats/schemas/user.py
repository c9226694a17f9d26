"""
Pydantic schemas for user-related responses.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from library_seats.models.user import UserRole


class UserResponse(BaseModel):
    id: int
    username: str
    name: str
    email: Optional[str]
    role: UserRole
    violation_count: int
    is_banned: bool
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
