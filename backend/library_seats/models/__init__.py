from library_seats.models.user import User, UserRole
from library_seats.models.seat import Seat, SeatStatus, SeatFeature
from library_seats.models.reservation import Reservation, ReservationStatus, TERMINAL_STATUSES
from library_seats.models.violation import Violation, ViolationType, Severity

__all__ = [
    "User", "UserRole",
    "Seat", "SeatStatus", "SeatFeature",
    "Reservation", "ReservationStatus", "TERMINAL_STATUSES",
    "Violation", "ViolationType", "Severity",
]
