"""
Seat endpoints with Redis caching on the seat map listing.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from library_seats.db.session import get_db
from library_seats.models.seat import SeatFeature
from library_seats.models.user import User
from library_seats.schemas.seat import SeatResponse, SeatListResponse, SeatStatusUpdate
from library_seats.services.seat_registry import get_seat, list_seats, list_available_seats, set_seat_status
from library_seats.services.cache_service import get_cached_seats, set_cached_seats
from library_seats.core.security import require_admin
from library_seats.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/seats", tags=["Seats"])


@router.get("/", response_model=SeatListResponse)
async def list_seats_endpoint(
    area: Optional[str] = Query(None, max_length=50),
    floor: Optional[int] = Query(None),
    features: Optional[list[SeatFeature]] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Seat map. Cached in Redis; any seat status change invalidates the cache.

    Repeat `features` to require several, e.g. ?features=power&features=window.
    """
    wanted = [f.value for f in features] if features else None

    cached = await get_cached_seats(area, floor, wanted)
    if cached is not None:
        logger.info("seats_list_cache_hit", area=area, floor=floor, features=wanted)
        return SeatListResponse(seats=cached, total=len(cached), cached=True)

    seats = await list_seats(db, area, floor, wanted)
    data = [SeatResponse.model_validate(s).model_dump(mode="json") for s in seats]

    await set_cached_seats(area, floor, data, wanted)

    return SeatListResponse(seats=data, total=len(data), cached=False)


@router.get("/available", response_model=list[SeatResponse])
async def list_available_seats_endpoint(
    start_time: datetime = Query(...),
    end_time: datetime = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Seats bookable for the given range. Not cached."""
    if start_time.tzinfo is None or end_time.tzinfo is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="start_time and end_time must include a timezone",
        )
    if end_time <= start_time:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="end_time must be after start_time",
        )
    return await list_available_seats(db, start_time, end_time)


@router.get("/{seat_id}", response_model=SeatResponse)
async def get_seat_endpoint(seat_id: int, db: AsyncSession = Depends(get_db)):
    seat = await get_seat(db, seat_id)
    if seat is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Seat not found")
    return seat


@router.patch("/{seat_id}/status", response_model=SeatResponse)
async def update_seat_status_endpoint(
    seat_id: int,
    body: SeatStatusUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Admin override of a seat's status (e.g. maintenance)."""
    seat = await set_seat_status(db, seat_id, body.status)
    if seat is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Seat not found")
    logger.info("seat_status_overridden", seat_id=seat_id, status=seat.status, admin_id=admin.id)
    return seat
