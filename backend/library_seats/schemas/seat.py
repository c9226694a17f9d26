"""
Pydantic schemas for seat-related request/response validation.
"""

from datetime import datetime
from pydantic import BaseModel

from library_seats.models.seat import SeatStatus


class SeatResponse(BaseModel):
    id: int
    number: str
    area: str
    floor: int
    row: int
    col: int
    status: SeatStatus
    is_reservable: bool
    features: list[str]
    updated_at: datetime

    model_config = {"from_attributes": True}


class SeatListResponse(BaseModel):
    seats: list[SeatResponse]
    total: int
    cached: bool = False


class SeatStatusUpdate(BaseModel):
    status: SeatStatus
