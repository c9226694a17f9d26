"""
Reservation lifecycle endpoints.

Commands return LifecycleResult values; this module maps failures to HTTP:
not found -> 404, not owner -> 403, any other guard failure -> 409 with
{"detail": {"reason": ...}}.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from library_seats.db.session import get_db
from library_seats.db.types import utcnow
from library_seats.models.user import User
from library_seats.schemas.reservation import (
    CheckInRequest,
    ReservationCreate,
    ReservationResponse,
    TempReleaseRequest,
)
from library_seats.services import lifecycle_service
from library_seats.services.lifecycle_service import FailureReason, LifecycleResult
from library_seats.services.reservation_store import get_reservation, list_user_reservations
from library_seats.services.interfaces.location import LocationVerifier, Position
from library_seats.services.location_service import get_location_verifier
from library_seats.core.security import get_current_user

router = APIRouter(prefix="/reservations", tags=["Reservations"])

NOT_FOUND_REASONS = (FailureReason.NOT_FOUND, FailureReason.SEAT_NOT_FOUND)


def _respond(result: LifecycleResult, now: datetime) -> ReservationResponse:
    if result.ok:
        return ReservationResponse.from_reservation(result.reservation, now)

    if result.reason in NOT_FOUND_REASONS:
        code = status.HTTP_404_NOT_FOUND
    elif result.reason == FailureReason.NOT_OWNER:
        code = status.HTTP_403_FORBIDDEN
    else:
        code = status.HTTP_409_CONFLICT
    raise HTTPException(status_code=code, detail={"reason": result.reason.value, **result.detail})


@router.post("/", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation_endpoint(
    body: ReservationCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Book a seat. The reservation starts pending; the seat becomes reserved."""
    now = utcnow()
    result = await lifecycle_service.create_reservation(
        db, user.id, body.seat_id, body.start_time, body.end_time, notes=body.notes, now=now
    )
    return _respond(result, now)


@router.get("/", response_model=list[ReservationResponse])
async def list_my_reservations(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    reservations = await list_user_reservations(db, user.id)
    return [ReservationResponse.from_reservation(r, now) for r in reservations]


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation_endpoint(
    reservation_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    reservation = await get_reservation(db, reservation_id)
    if reservation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reservation not found")
    if reservation.user_id != user.id and not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your reservation")
    return ReservationResponse.from_reservation(reservation, utcnow())


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation_endpoint(
    reservation_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    result = await lifecycle_service.cancel_reservation(db, reservation_id, actor=user, now=now)
    return _respond(result, now)


@router.post("/{reservation_id}/check-in", response_model=ReservationResponse)
async def check_in_endpoint(
    reservation_id: int,
    body: CheckInRequest,
    user: User = Depends(get_current_user),
    verifier: LocationVerifier = Depends(get_location_verifier),
    db: AsyncSession = Depends(get_db),
):
    """
    Check in inside [start - 15min, end + 15min]. Requires the client's
    coordinates unless location verification is disabled.
    """
    position = None
    if body.latitude is not None and body.longitude is not None:
        position = Position(latitude=body.latitude, longitude=body.longitude, accuracy=body.accuracy)

    now = utcnow()
    result = await lifecycle_service.check_in(
        db, reservation_id, verifier, position=position, actor=user, now=now
    )
    return _respond(result, now)


@router.post("/{reservation_id}/check-out", response_model=ReservationResponse)
async def check_out_endpoint(
    reservation_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    result = await lifecycle_service.check_out(db, reservation_id, actor=user, now=now)
    return _respond(result, now)


@router.post("/{reservation_id}/temp-release", response_model=ReservationResponse)
async def temp_release_endpoint(
    reservation_id: int,
    body: TempReleaseRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Step away for 5-120 minutes without losing the seat."""
    now = utcnow()
    result = await lifecycle_service.temp_release(
        db, reservation_id, body.duration_minutes, body.reason, actor=user, now=now
    )
    return _respond(result, now)


@router.post("/{reservation_id}/resume", response_model=ReservationResponse)
async def resume_endpoint(
    reservation_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    result = await lifecycle_service.resume(db, reservation_id, actor=user, now=now)
    return _respond(result, now)
