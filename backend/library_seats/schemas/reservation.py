"""
Pydantic schemas for reservation lifecycle requests and responses.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from library_seats.models.reservation import Reservation, ReservationStatus
from library_seats.services.reservation_windows import (
    DisplayStatus,
    TEMP_RELEASE_MAX_MINUTES,
    TEMP_RELEASE_MIN_MINUTES,
    available_actions,
    derive_display_status,
)


class ReservationCreate(BaseModel):
    seat_id: int
    start_time: datetime
    end_time: datetime
    notes: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_range(self):
        if self.start_time.tzinfo is None or self.end_time.tzinfo is None:
            raise ValueError("start_time and end_time must include a timezone")
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class CheckInRequest(BaseModel):
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)


class TempReleaseRequest(BaseModel):
    duration_minutes: int = Field(..., ge=TEMP_RELEASE_MIN_MINUTES, le=TEMP_RELEASE_MAX_MINUTES)
    reason: str = Field("", max_length=255)


class ReservationResponse(BaseModel):
    id: int
    user_id: int
    seat_id: int
    start_time: datetime
    end_time: datetime
    status: ReservationStatus
    display_status: DisplayStatus
    available_actions: list[str]
    check_in_time: Optional[datetime]
    check_out_time: Optional[datetime]
    temp_release_time: Optional[datetime]
    temp_release_duration: Optional[int]
    temp_release_reason: Optional[str]
    temp_release_expiry_time: Optional[datetime]
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_reservation(cls, reservation: Reservation, now: datetime) -> "ReservationResponse":
        return cls(
            id=reservation.id,
            user_id=reservation.user_id,
            seat_id=reservation.seat_id,
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            status=reservation.status,
            display_status=derive_display_status(reservation, now),
            available_actions=available_actions(reservation, now),
            check_in_time=reservation.check_in_time,
            check_out_time=reservation.check_out_time,
            temp_release_time=reservation.temp_release_time,
            temp_release_duration=reservation.temp_release_duration,
            temp_release_reason=reservation.temp_release_reason,
            temp_release_expiry_time=reservation.temp_release_expiry_time,
            notes=reservation.notes,
            created_at=reservation.created_at,
            updated_at=reservation.updated_at,
        )
