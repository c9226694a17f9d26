from library_seats.schemas.user import UserResponse
from library_seats.schemas.seat import SeatResponse, SeatListResponse, SeatStatusUpdate
from library_seats.schemas.reservation import (
    ReservationCreate, ReservationResponse, CheckInRequest, TempReleaseRequest,
)
from library_seats.schemas.violation import ViolationCreate, ViolationResponse
from library_seats.schemas.detection import (
    RuleResponse, RuleUpdate, DetectionStatus, DetectionStart, SweepResponse,
)

__all__ = [
    "UserResponse",
    "SeatResponse", "SeatListResponse", "SeatStatusUpdate",
    "ReservationCreate", "ReservationResponse", "CheckInRequest", "TempReleaseRequest",
    "ViolationCreate", "ViolationResponse",
    "RuleResponse", "RuleUpdate", "DetectionStatus", "DetectionStart", "SweepResponse",
]
