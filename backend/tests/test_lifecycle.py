"""
Tests for the reservation state machine and seat mirroring.

All commands run against the service layer with fixed instants.
"""

import asyncio
from datetime import timedelta
from typing import Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from library_seats.models.reservation import ReservationStatus
from library_seats.models.seat import Seat, SeatStatus
from library_seats.models.user import User
from library_seats.services import lifecycle_service
from library_seats.services.lifecycle_service import FailureReason
from library_seats.services.interfaces.location import LocationCheck, LocationVerifier, Position
from library_seats.services.location_service import DisabledLocationVerifier

from conftest import T

ALLOW = DisabledLocationVerifier()


class RejectingVerifier(LocationVerifier):
    async def verify(self, position: Optional[Position]) -> LocationCheck:
        return LocationCheck(is_valid=False, distance=850, error="outside_library")


class BrokenVerifier(LocationVerifier):
    async def verify(self, position: Optional[Position]) -> LocationCheck:
        raise RuntimeError("gps provider down")


class SlowVerifier(LocationVerifier):
    async def verify(self, position: Optional[Position]) -> LocationCheck:
        await asyncio.sleep(5)
        return LocationCheck(is_valid=True)


async def book(db: AsyncSession, user: User, seat: Seat, hours: int = 4):
    result = await lifecycle_service.create_reservation(
        db, user.id, seat.id, T, T + timedelta(hours=hours), now=T - timedelta(hours=1)
    )
    assert result.ok
    return result.reservation


async def seat_status(db: AsyncSession, seat: Seat) -> str:
    await db.refresh(seat)
    return seat.status


@pytest.mark.asyncio
async def test_booking_makes_seat_reserved(db_session, test_user, test_seat):
    """Booking creates a pending reservation and reserves the seat."""
    reservation = await book(db_session, test_user, test_seat)
    assert reservation.status == ReservationStatus.PENDING
    assert await seat_status(db_session, test_seat) == SeatStatus.RESERVED


@pytest.mark.asyncio
async def test_booking_rejects_taken_seat(db_session, test_user, other_user, test_seat):
    """A seat with a live reservation cannot be booked again."""
    await book(db_session, test_user, test_seat)
    result = await lifecycle_service.create_reservation(
        db_session, other_user.id, test_seat.id, T, T + timedelta(hours=1), now=T - timedelta(hours=1)
    )
    assert not result.ok
    assert result.reason == FailureReason.SEAT_UNAVAILABLE


@pytest.mark.asyncio
async def test_banned_user_cannot_book(db_session, test_user, test_seat):
    """Banned users are refused and the seat stays available."""
    test_user.is_banned = True
    await db_session.commit()
    result = await lifecycle_service.create_reservation(
        db_session, test_user.id, test_seat.id, T, T + timedelta(hours=1), now=T - timedelta(hours=1)
    )
    assert result.reason == FailureReason.USER_BANNED
    assert await seat_status(db_session, test_seat) == SeatStatus.AVAILABLE


@pytest.mark.asyncio
async def test_booking_rejects_inverted_range(db_session, test_user, test_seat):
    """End before start is an invalid time range."""
    result = await lifecycle_service.create_reservation(
        db_session, test_user.id, test_seat.id, T, T - timedelta(hours=1), now=T - timedelta(hours=2)
    )
    assert result.reason == FailureReason.INVALID_TIME_RANGE


@pytest.mark.asyncio
async def test_cancel_pending_frees_seat(db_session, test_user, test_seat):
    """Cancelling a pending reservation frees the seat."""
    reservation = await book(db_session, test_user, test_seat)
    result = await lifecycle_service.cancel_reservation(db_session, reservation.id, actor=test_user, now=T)
    assert result.ok
    assert result.reservation.status == ReservationStatus.CANCELLED
    assert result.reservation.updated_at == T
    assert await seat_status(db_session, test_seat) == SeatStatus.AVAILABLE


@pytest.mark.asyncio
async def test_cancel_by_other_user_is_rejected(db_session, test_user, other_user, test_seat):
    """Only the owner can cancel."""
    reservation = await book(db_session, test_user, test_seat)
    result = await lifecycle_service.cancel_reservation(db_session, reservation.id, actor=other_user, now=T)
    assert result.reason == FailureReason.NOT_OWNER


@pytest.mark.asyncio
async def test_check_in_then_again_fails_without_mutation(db_session, test_user, test_seat):
    """A second check-in fails and leaves the first check-in time alone."""
    reservation = await book(db_session, test_user, test_seat)

    first = await lifecycle_service.check_in(db_session, reservation.id, ALLOW, now=T)
    assert first.ok
    assert first.reservation.status == ReservationStatus.CONFIRMED
    assert first.reservation.check_in_time == T
    assert await seat_status(db_session, test_seat) == SeatStatus.OCCUPIED

    second = await lifecycle_service.check_in(db_session, reservation.id, ALLOW, now=T + timedelta(minutes=5))
    assert not second.ok
    assert second.reason == FailureReason.ALREADY_CHECKED_IN
    assert second.reservation.check_in_time == T


@pytest.mark.asyncio
async def test_check_in_too_early_leaves_reservation_pending(db_session, test_user, test_seat):
    """Check-in before the window opens changes nothing."""
    reservation = await book(db_session, test_user, test_seat)

    result = await lifecycle_service.check_in(db_session, reservation.id, ALLOW, now=T - timedelta(minutes=20))

    assert result.reason == FailureReason.OUTSIDE_CHECK_IN_WINDOW
    assert result.reservation.status == ReservationStatus.PENDING
    assert result.reservation.check_in_time is None
    assert await seat_status(db_session, test_seat) == SeatStatus.RESERVED


@pytest.mark.asyncio
async def test_check_in_rejected_by_location(db_session, test_user, test_seat):
    """A failed location check blocks check-in and reports the distance."""
    reservation = await book(db_session, test_user, test_seat)

    result = await lifecycle_service.check_in(
        db_session, reservation.id, RejectingVerifier(), position=Position(0.0, 0.0), now=T
    )

    assert result.reason == FailureReason.LOCATION_VERIFICATION_FAILED
    assert result.detail["error"] == "outside_library"
    assert result.detail["distance"] == 850
    assert result.reservation.status == ReservationStatus.PENDING


@pytest.mark.asyncio
async def test_check_in_verifier_error_is_a_failure(db_session, test_user, test_seat):
    """A verifier exception is reported as a failed location check."""
    reservation = await book(db_session, test_user, test_seat)
    result = await lifecycle_service.check_in(db_session, reservation.id, BrokenVerifier(), now=T)
    assert result.reason == FailureReason.LOCATION_VERIFICATION_FAILED
    assert "gps provider down" in result.detail["error"]


@pytest.mark.asyncio
async def test_check_in_verifier_timeout_is_a_failure(db_session, test_user, test_seat):
    """A slow verifier times out and the seat stays reserved."""
    reservation = await book(db_session, test_user, test_seat)
    result = await lifecycle_service.check_in(
        db_session, reservation.id, SlowVerifier(), now=T, timeout=0.01
    )
    assert result.reason == FailureReason.LOCATION_VERIFICATION_FAILED
    assert result.detail["error"] == "timeout"
    assert await seat_status(db_session, test_seat) == SeatStatus.RESERVED


@pytest.mark.asyncio
async def test_check_out_completes_and_frees_seat(db_session, test_user, test_seat):
    """Check-out completes the reservation and frees the seat."""
    reservation = await book(db_session, test_user, test_seat)
    await lifecycle_service.check_in(db_session, reservation.id, ALLOW, now=T)

    result = await lifecycle_service.check_out(db_session, reservation.id, now=T + timedelta(hours=2))

    assert result.ok
    assert result.reservation.status == ReservationStatus.COMPLETED
    assert result.reservation.check_out_time == T + timedelta(hours=2)
    assert await seat_status(db_session, test_seat) == SeatStatus.AVAILABLE


@pytest.mark.asyncio
async def test_check_out_without_check_in(db_session, test_user, test_seat):
    """Check-out needs a prior check-in."""
    reservation = await book(db_session, test_user, test_seat)
    result = await lifecycle_service.check_out(db_session, reservation.id, now=T)
    assert result.reason == FailureReason.NOT_CHECKED_IN


@pytest.mark.asyncio
async def test_temp_release_then_resume(db_session, test_user, test_seat):
    """Temp-release sets all four release fields; resume clears them."""
    reservation = await book(db_session, test_user, test_seat)
    await lifecycle_service.check_in(db_session, reservation.id, ALLOW, now=T)

    released = await lifecycle_service.temp_release(
        db_session, reservation.id, 30, "lunch", now=T + timedelta(hours=1)
    )
    assert released.ok
    r = released.reservation
    assert r.status == ReservationStatus.TEMPORARILY_RELEASED
    assert r.temp_release_time == T + timedelta(hours=1)
    assert r.temp_release_duration == 30
    assert r.temp_release_reason == "lunch"
    assert r.temp_release_expiry_time == T + timedelta(hours=1, minutes=30)
    assert await seat_status(db_session, test_seat) == SeatStatus.TEMPORARILY_RELEASED

    resumed = await lifecycle_service.resume(db_session, reservation.id, now=T + timedelta(hours=1, minutes=10))
    assert resumed.ok
    r = resumed.reservation
    assert r.status == ReservationStatus.CONFIRMED
    assert r.temp_release_time is None
    assert r.temp_release_duration is None
    assert r.temp_release_reason is None
    assert r.temp_release_expiry_time is None
    assert await seat_status(db_session, test_seat) == SeatStatus.OCCUPIED


@pytest.mark.asyncio
async def test_resume_allowed_after_expiry_instant(db_session, test_user, test_seat):
    """Resume still works until the sweep has cancelled the reservation."""
    reservation = await book(db_session, test_user, test_seat)
    await lifecycle_service.check_in(db_session, reservation.id, ALLOW, now=T)
    await lifecycle_service.temp_release(db_session, reservation.id, 5, "", now=T)

    result = await lifecycle_service.resume(db_session, reservation.id, now=T + timedelta(minutes=20))

    assert result.ok
    assert await seat_status(db_session, test_seat) == SeatStatus.OCCUPIED


@pytest.mark.asyncio
@pytest.mark.parametrize("minutes", [4, 121])
async def test_temp_release_duration_out_of_range(db_session, test_user, test_seat, minutes):
    """Durations outside 5-120 minutes are rejected."""
    reservation = await book(db_session, test_user, test_seat)
    await lifecycle_service.check_in(db_session, reservation.id, ALLOW, now=T)

    result = await lifecycle_service.temp_release(db_session, reservation.id, minutes, "break", now=T)

    assert result.reason == FailureReason.INVALID_DURATION
    assert result.reservation.status == ReservationStatus.CONFIRMED


@pytest.mark.asyncio
async def test_resume_requires_temp_release(db_session, test_user, test_seat):
    """Resume on a pending reservation is an invalid state."""
    reservation = await book(db_session, test_user, test_seat)
    result = await lifecycle_service.resume(db_session, reservation.id, now=T)
    assert result.reason == FailureReason.INVALID_STATE


@pytest.mark.asyncio
async def test_unknown_reservation_is_not_found(db_session):
    """Commands on a missing reservation return not_found."""
    result = await lifecycle_service.check_out(db_session, 9999, now=T)
    assert not result.ok
    assert result.reason == FailureReason.NOT_FOUND
    assert result.reservation is None


@pytest.mark.asyncio
async def test_expiry_sweep_cancels_lapsed_temp_release(db_session, test_user, test_seat):
    """A lapsed temp-release is cancelled with its release fields cleared."""
    reservation = await book(db_session, test_user, test_seat)
    await lifecycle_service.check_in(db_session, reservation.id, ALLOW, now=T)
    await lifecycle_service.temp_release(db_session, reservation.id, 15, "call", now=T)

    early = await lifecycle_service.run_expiry_sweep(db_session, now=T + timedelta(minutes=10))
    assert early.temp_released_cancelled == []

    later = T + timedelta(minutes=16)
    summary = await lifecycle_service.run_expiry_sweep(db_session, now=later)

    assert summary.temp_released_cancelled == [reservation.id]
    await db_session.refresh(reservation)
    assert reservation.status == ReservationStatus.CANCELLED
    assert reservation.check_out_time == later
    assert reservation.temp_release_time is None
    assert reservation.temp_release_duration is None
    assert reservation.temp_release_reason is None
    assert reservation.temp_release_expiry_time is None
    assert await seat_status(db_session, test_seat) == SeatStatus.AVAILABLE


@pytest.mark.asyncio
async def test_expiry_sweep_expires_missed_check_in(db_session, test_user, test_seat):
    """Pending reservations expire once the check-in grace has passed."""
    reservation = await book(db_session, test_user, test_seat, hours=1)

    inside = await lifecycle_service.run_expiry_sweep(db_session, now=T + timedelta(hours=1, minutes=15))
    assert inside.pending_expired == []

    summary = await lifecycle_service.run_expiry_sweep(db_session, now=T + timedelta(hours=1, minutes=16))

    assert summary.pending_expired == [reservation.id]
    await db_session.refresh(reservation)
    assert reservation.status == ReservationStatus.EXPIRED
    assert await seat_status(db_session, test_seat) == SeatStatus.AVAILABLE
