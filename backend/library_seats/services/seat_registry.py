"""
Seat registry: the single write path for seat status.

No transition legality is checked here. The lifecycle service decides what
a seat should become; the registry just records it.
"""

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from library_seats.models.seat import Seat, SeatStatus
from library_seats.models.reservation import Reservation, ReservationStatus
from library_seats.services.cache_service import invalidate_seat_cache
from library_seats.core.metrics import record_seat_status
from library_seats.core.logging import get_logger

logger = get_logger(__name__)


async def get_seat(db: AsyncSession, seat_id: int) -> Optional[Seat]:
    result = await db.execute(select(Seat).where(Seat.id == seat_id))
    return result.scalar_one_or_none()


async def list_seats(
    db: AsyncSession,
    area: Optional[str] = None,
    floor: Optional[int] = None,
    features: Optional[Sequence[str]] = None,
) -> list[Seat]:
    """
    List seats ordered for seat-map rendering. Uses ix_seats_area_floor.

    `features` keeps seats that have every listed feature. The column is a
    JSON list, so that part is applied after the query.
    """
    query = select(Seat)
    if area is not None:
        query = query.where(Seat.area == area)
    if floor is not None:
        query = query.where(Seat.floor == floor)
    result = await db.execute(query.order_by(Seat.area, Seat.floor, Seat.row, Seat.col))
    seats = list(result.scalars().all())
    if features:
        wanted = set(features)
        seats = [s for s in seats if wanted.issubset(s.features or ())]
    return seats


async def list_available_seats(
    db: AsyncSession,
    start_time: datetime,
    end_time: datetime,
) -> list[Seat]:
    """
    Seats that can be booked for [start_time, end_time): currently available,
    reservable, and without a confirmed reservation overlapping the range.
    """
    overlapping = (
        select(Reservation.seat_id)
        .where(
            and_(
                Reservation.status == ReservationStatus.CONFIRMED.value,
                Reservation.start_time < end_time,
                Reservation.end_time > start_time,
            )
        )
    )
    result = await db.execute(
        select(Seat)
        .where(
            Seat.status == SeatStatus.AVAILABLE.value,
            Seat.is_reservable.is_(True),
            Seat.id.not_in(overlapping),
        )
        .order_by(Seat.area, Seat.floor, Seat.row, Seat.col)
    )
    return list(result.scalars().all())


async def set_seat_status(db: AsyncSession, seat_id: int, status: SeatStatus) -> Optional[Seat]:
    """Persist a new seat status immediately. Returns None for an unknown seat."""
    seat = await get_seat(db, seat_id)
    if seat is None:
        logger.warning("seat_status_update_failed", seat_id=seat_id, reason="not_found")
        return None

    previous = seat.status
    seat.status = SeatStatus(status).value
    await db.flush()

    record_seat_status(seat.status)
    await invalidate_seat_cache()
    logger.info("seat_status_changed", seat_id=seat_id, previous=previous, status=seat.status)
    return seat
