"""
Reservation store: reservation reads/writes plus the status transition
helper that keeps the bound seat in sync.

Seat mirroring:
  pending               -> reserved
  confirmed             -> occupied
  temporarily_released  -> temporarily_released
  completed / cancelled / expired -> available
"""

from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from library_seats.models.reservation import Reservation, ReservationStatus, TERMINAL_STATUSES
from library_seats.models.seat import SeatStatus
from library_seats.services.seat_registry import set_seat_status
from library_seats.core.logging import get_logger

logger = get_logger(__name__)

SEAT_STATUS_FOR = {
    ReservationStatus.PENDING: SeatStatus.RESERVED,
    ReservationStatus.CONFIRMED: SeatStatus.OCCUPIED,
    ReservationStatus.TEMPORARILY_RELEASED: SeatStatus.TEMPORARILY_RELEASED,
    ReservationStatus.COMPLETED: SeatStatus.AVAILABLE,
    ReservationStatus.CANCELLED: SeatStatus.AVAILABLE,
    ReservationStatus.EXPIRED: SeatStatus.AVAILABLE,
}


async def get_reservation(
    db: AsyncSession,
    reservation_id: int,
    for_update: bool = False,
) -> Optional[Reservation]:
    """
    Fetch a reservation. With for_update the row is locked until the
    transaction ends (ignored by SQLite, which serializes writers anyway).
    """
    query = select(Reservation).where(Reservation.id == reservation_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def list_reservations(db: AsyncSession) -> list[Reservation]:
    result = await db.execute(select(Reservation).order_by(Reservation.start_time.asc()))
    return list(result.scalars().all())


async def list_user_reservations(db: AsyncSession, user_id: int) -> list[Reservation]:
    result = await db.execute(
        select(Reservation)
        .where(Reservation.user_id == user_id)
        .order_by(Reservation.created_at.desc())
    )
    return list(result.scalars().all())


async def find_reservations(
    db: AsyncSession,
    *criteria,
    predicate: Optional[Callable[[Reservation], bool]] = None,
) -> list[Reservation]:
    """
    Filter reservations by SQL criteria, then optionally by a Python
    predicate for conditions that are awkward to express in SQL.
    """
    result = await db.execute(select(Reservation).where(*criteria))
    rows = list(result.scalars().all())
    if predicate is not None:
        rows = [r for r in rows if predicate(r)]
    return rows


async def active_reservation_for_seat(db: AsyncSession, seat_id: int) -> Optional[Reservation]:
    """The seat's non-terminal reservation, if any."""
    result = await db.execute(
        select(Reservation)
        .where(
            Reservation.seat_id == seat_id,
            Reservation.status.not_in(TERMINAL_STATUSES),
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def add_reservation(db: AsyncSession, reservation: Reservation) -> Reservation:
    """Insert a reservation and mirror its status onto the seat."""
    db.add(reservation)
    await db.flush()
    await set_seat_status(db, reservation.seat_id, SEAT_STATUS_FOR[ReservationStatus(reservation.status)])
    await db.refresh(reservation)
    return reservation


async def transition(
    db: AsyncSession,
    reservation: Reservation,
    status: ReservationStatus,
    now: datetime,
    **fields,
) -> Reservation:
    """
    Move a reservation to `status`, apply extra column updates, stamp
    updated_at with `now`, and sync the bound seat.
    """
    previous = reservation.status
    reservation.status = ReservationStatus(status).value
    for name, value in fields.items():
        setattr(reservation, name, value)
    reservation.updated_at = now
    await db.flush()

    await set_seat_status(db, reservation.seat_id, SEAT_STATUS_FOR[ReservationStatus(status)])

    logger.info(
        "reservation_transitioned",
        reservation_id=reservation.id,
        previous=previous,
        status=reservation.status,
    )
    return reservation
