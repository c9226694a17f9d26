"""
Time-window rules for reservations.

Everything here is a pure function of the stored reservation fields and an
injected `now`. Eligibility and display status are recomputed on every read
and never persisted.
"""

from datetime import datetime, timedelta
from enum import Enum

from library_seats.models.reservation import ReservationStatus

CHECK_IN_GRACE = timedelta(minutes=15)
TEMP_RELEASE_MIN_MINUTES = 5
TEMP_RELEASE_MAX_MINUTES = 120


class DisplayStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"  # inside the check-in window
    CHECKED_IN = "checked_in"
    OVERDUE = "overdue"
    NO_SHOW = "no_show"
    COMPLETED = "completed"
    TEMP_RELEASED = "temp_released"
    TEMP_EXPIRED = "temp_expired"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


def check_in_window(start_time: datetime, end_time: datetime) -> tuple[datetime, datetime]:
    """Closed interval in which check-in is allowed."""
    return start_time - CHECK_IN_GRACE, end_time + CHECK_IN_GRACE


def within_check_in_window(reservation, now: datetime) -> bool:
    opens, closes = check_in_window(reservation.start_time, reservation.end_time)
    return opens <= now <= closes


def check_in_window_closed(reservation, now: datetime) -> bool:
    return now > reservation.end_time + CHECK_IN_GRACE


def can_check_in(reservation, now: datetime) -> bool:
    return (
        reservation.status == ReservationStatus.PENDING
        and reservation.check_in_time is None
        and within_check_in_window(reservation, now)
    )


def can_check_out(reservation) -> bool:
    return (
        reservation.status == ReservationStatus.CONFIRMED
        and reservation.check_in_time is not None
        and reservation.check_out_time is None
    )


def can_resume(reservation) -> bool:
    return reservation.status == ReservationStatus.TEMPORARILY_RELEASED


def valid_temp_release_duration(minutes: int) -> bool:
    return TEMP_RELEASE_MIN_MINUTES <= minutes <= TEMP_RELEASE_MAX_MINUTES


def temp_release_expired(reservation, now: datetime) -> bool:
    return (
        reservation.status == ReservationStatus.TEMPORARILY_RELEASED
        and reservation.temp_release_expiry_time is not None
        and now > reservation.temp_release_expiry_time
    )


def derive_display_status(reservation, now: datetime) -> DisplayStatus:
    """
    Project a reservation onto the status shown to users.

    Order matters: temp-release and terminal states win over the time
    window, and a checked-in reservation is judged against end_time only.
    """
    status = reservation.status

    if status == ReservationStatus.TEMPORARILY_RELEASED:
        if temp_release_expired(reservation, now):
            return DisplayStatus.TEMP_EXPIRED
        return DisplayStatus.TEMP_RELEASED

    if status == ReservationStatus.CANCELLED:
        return DisplayStatus.CANCELLED

    if status == ReservationStatus.EXPIRED:
        return DisplayStatus.EXPIRED

    if status == ReservationStatus.COMPLETED or reservation.check_out_time is not None:
        return DisplayStatus.COMPLETED

    if reservation.check_in_time is not None:
        if now > reservation.end_time:
            return DisplayStatus.OVERDUE
        return DisplayStatus.CHECKED_IN

    opens, closes = check_in_window(reservation.start_time, reservation.end_time)
    if now < opens:
        return DisplayStatus.UPCOMING
    if now > closes:
        return DisplayStatus.NO_SHOW
    return DisplayStatus.ACTIVE


def available_actions(reservation, now: datetime) -> list[str]:
    """Lifecycle commands currently open to the reservation owner."""
    actions = []
    if reservation.status == ReservationStatus.PENDING:
        actions.append("cancel")
    if can_check_in(reservation, now):
        actions.append("check_in")
    if can_check_out(reservation):
        actions.extend(["check_out", "temp_release"])
    if can_resume(reservation):
        actions.append("resume")
    return actions
