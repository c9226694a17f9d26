"""
Reservation lifecycle controller - the reservation state machine.

TRANSITIONS
===========

  (none)                --book------------> pending               seat: reserved
  pending               --cancel----------> cancelled             seat: available
  pending               --check-in--------> confirmed             seat: occupied
  confirmed             --check-out-------> completed             seat: available
  confirmed             --temp-release----> temporarily_released  seat: temporarily_released
  temporarily_released  --resume----------> confirmed             seat: occupied
  temporarily_released  --expiry sweep----> cancelled             seat: available
  pending               --expiry sweep----> expired               seat: available

Every command returns a LifecycleResult. Guard failures are expected
(double clicks, stale pages, the sweep getting there first) and are
reported as values, never raised.

Every command re-reads the reservation with FOR UPDATE right before it
mutates, so a decision is never made on a row another writer changed.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from library_seats.db.types import utcnow
from library_seats.models.reservation import Reservation, ReservationStatus
from library_seats.models.seat import SeatStatus
from library_seats.models.user import User
from library_seats.services import reservation_store
from library_seats.services.seat_registry import get_seat
from library_seats.services.interfaces.location import LocationVerifier, Position
from library_seats.services.reservation_windows import (
    can_check_out,
    can_resume,
    check_in_window_closed,
    temp_release_expired,
    valid_temp_release_duration,
    within_check_in_window,
)
from library_seats.core.config import get_settings
from library_seats.core.metrics import record_lifecycle
from library_seats.core.logging import get_logger

logger = get_logger(__name__)


class FailureReason(str, Enum):
    NOT_FOUND = "not_found"
    NOT_OWNER = "not_owner"
    INVALID_STATE = "invalid_state"
    OUTSIDE_CHECK_IN_WINDOW = "outside_check_in_window"
    ALREADY_CHECKED_IN = "already_checked_in"
    NOT_CHECKED_IN = "not_checked_in"
    ALREADY_CHECKED_OUT = "already_checked_out"
    INVALID_DURATION = "invalid_duration"
    LOCATION_VERIFICATION_FAILED = "location_verification_failed"
    SEAT_NOT_FOUND = "seat_not_found"
    SEAT_UNAVAILABLE = "seat_unavailable"
    USER_BANNED = "user_banned"
    INVALID_TIME_RANGE = "invalid_time_range"


@dataclass
class LifecycleResult:
    ok: bool
    reservation: Optional[Reservation] = None
    reason: Optional[FailureReason] = None
    detail: dict = field(default_factory=dict)

    @classmethod
    def success(cls, reservation: Reservation) -> "LifecycleResult":
        return cls(ok=True, reservation=reservation)

    @classmethod
    def failure(
        cls,
        reason: FailureReason,
        reservation: Optional[Reservation] = None,
        **detail,
    ) -> "LifecycleResult":
        return cls(ok=False, reservation=reservation, reason=reason, detail=detail)


@dataclass
class ExpirySummary:
    temp_released_cancelled: list[int] = field(default_factory=list)
    pending_expired: list[int] = field(default_factory=list)


def _is_owner(reservation: Reservation, actor: Optional[User]) -> bool:
    # actor=None is the system (violation sweep, expiry sweep)
    return actor is None or actor.is_admin or reservation.user_id == actor.id


def _finish(operation: str, result: LifecycleResult) -> LifecycleResult:
    record_lifecycle(operation, "ok" if result.ok else result.reason.value)
    if not result.ok:
        logger.info(
            "lifecycle_rejected",
            operation=operation,
            reason=result.reason.value,
            reservation_id=result.reservation.id if result.reservation else None,
            **result.detail,
        )
    return result


async def _load(
    db: AsyncSession,
    reservation_id: int,
    actor: Optional[User],
    for_update: bool = True,
) -> tuple[Optional[Reservation], Optional[LifecycleResult]]:
    reservation = await reservation_store.get_reservation(db, reservation_id, for_update=for_update)
    if reservation is None:
        return None, LifecycleResult.failure(FailureReason.NOT_FOUND)
    if not _is_owner(reservation, actor):
        return None, LifecycleResult.failure(FailureReason.NOT_OWNER, reservation)
    return reservation, None


async def create_reservation(
    db: AsyncSession,
    user_id: int,
    seat_id: int,
    start_time: datetime,
    end_time: datetime,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> LifecycleResult:
    """Book a seat. The new reservation is pending and the seat becomes reserved."""
    now = now or utcnow()

    if end_time <= start_time or end_time <= now:
        return _finish("book", LifecycleResult.failure(FailureReason.INVALID_TIME_RANGE))

    user = await db.get(User, user_id)
    if user is None:
        return _finish("book", LifecycleResult.failure(FailureReason.NOT_FOUND, user_id=user_id))
    if user.is_banned:
        return _finish("book", LifecycleResult.failure(FailureReason.USER_BANNED, user_id=user_id))

    seat = await get_seat(db, seat_id)
    if seat is None:
        return _finish("book", LifecycleResult.failure(FailureReason.SEAT_NOT_FOUND, seat_id=seat_id))
    if not seat.is_reservable or seat.status != SeatStatus.AVAILABLE:
        return _finish(
            "book",
            LifecycleResult.failure(FailureReason.SEAT_UNAVAILABLE, seat_id=seat_id, seat_status=seat.status),
        )

    # One non-terminal reservation per seat
    existing = await reservation_store.active_reservation_for_seat(db, seat_id)
    if existing is not None:
        return _finish(
            "book",
            LifecycleResult.failure(FailureReason.SEAT_UNAVAILABLE, seat_id=seat_id, held_by=existing.id),
        )

    reservation = Reservation(
        user_id=user_id,
        seat_id=seat_id,
        start_time=start_time,
        end_time=end_time,
        status=ReservationStatus.PENDING.value,
        notes=notes,
        created_at=now,
        updated_at=now,
    )
    reservation = await reservation_store.add_reservation(db, reservation)

    logger.info(
        "reservation_created",
        reservation_id=reservation.id,
        user_id=user_id,
        seat_id=seat_id,
        start_time=start_time.isoformat(),
        end_time=end_time.isoformat(),
    )
    return _finish("book", LifecycleResult.success(reservation))


async def cancel_reservation(
    db: AsyncSession,
    reservation_id: int,
    actor: Optional[User] = None,
    now: Optional[datetime] = None,
) -> LifecycleResult:
    """Cancel a booking that has not been checked in yet."""
    now = now or utcnow()
    reservation, failed = await _load(db, reservation_id, actor)
    if failed:
        return _finish("cancel", failed)

    if reservation.status != ReservationStatus.PENDING:
        return _finish(
            "cancel",
            LifecycleResult.failure(FailureReason.INVALID_STATE, reservation, status=reservation.status),
        )

    await reservation_store.transition(db, reservation, ReservationStatus.CANCELLED, now)
    logger.info("reservation_cancelled", reservation_id=reservation.id, user_id=reservation.user_id)
    return _finish("cancel", LifecycleResult.success(reservation))


def _check_in_guard(reservation: Reservation, now: datetime) -> Optional[LifecycleResult]:
    if reservation.check_in_time is not None:
        return LifecycleResult.failure(FailureReason.ALREADY_CHECKED_IN, reservation)
    if reservation.status != ReservationStatus.PENDING:
        return LifecycleResult.failure(FailureReason.INVALID_STATE, reservation, status=reservation.status)
    if not within_check_in_window(reservation, now):
        return LifecycleResult.failure(FailureReason.OUTSIDE_CHECK_IN_WINDOW, reservation)
    return None


async def check_in(
    db: AsyncSession,
    reservation_id: int,
    verifier: LocationVerifier,
    position: Optional[Position] = None,
    actor: Optional[User] = None,
    now: Optional[datetime] = None,
    timeout: Optional[float] = None,
) -> LifecycleResult:
    """
    Check in to a pending reservation inside [start - 15min, end + 15min].

    Location verification is a hard precondition: a negative answer, an
    error or a timeout all fail the command without touching state.
    """
    now = now or utcnow()
    if timeout is None:
        timeout = get_settings().LOCATION_VERIFY_TIMEOUT_SECONDS

    reservation, failed = await _load(db, reservation_id, actor, for_update=False)
    if failed:
        return _finish("check_in", failed)

    failed = _check_in_guard(reservation, now)
    if failed:
        return _finish("check_in", failed)

    try:
        check = await asyncio.wait_for(verifier.verify(position), timeout=timeout)
    except asyncio.TimeoutError:
        return _finish(
            "check_in",
            LifecycleResult.failure(FailureReason.LOCATION_VERIFICATION_FAILED, reservation, error="timeout"),
        )
    except Exception as e:
        logger.warning("location_verification_error", reservation_id=reservation_id, error=str(e))
        return _finish(
            "check_in",
            LifecycleResult.failure(FailureReason.LOCATION_VERIFICATION_FAILED, reservation, error=str(e)),
        )

    if not check.is_valid:
        return _finish(
            "check_in",
            LifecycleResult.failure(
                FailureReason.LOCATION_VERIFICATION_FAILED,
                reservation,
                error=check.error,
                distance=check.distance,
            ),
        )

    # Verification may have suspended; re-read and re-validate before writing
    reservation, failed = await _load(db, reservation_id, actor)
    if failed:
        return _finish("check_in", failed)
    failed = _check_in_guard(reservation, now)
    if failed:
        return _finish("check_in", failed)

    await reservation_store.transition(
        db, reservation, ReservationStatus.CONFIRMED, now, check_in_time=now
    )
    logger.info(
        "reservation_checked_in",
        reservation_id=reservation.id,
        user_id=reservation.user_id,
        library_id=check.library_id,
    )
    return _finish("check_in", LifecycleResult.success(reservation))


def _check_out_guard(reservation: Reservation) -> Optional[LifecycleResult]:
    if reservation.check_in_time is None:
        return LifecycleResult.failure(FailureReason.NOT_CHECKED_IN, reservation)
    if reservation.check_out_time is not None:
        return LifecycleResult.failure(FailureReason.ALREADY_CHECKED_OUT, reservation)
    if not can_check_out(reservation):
        return LifecycleResult.failure(FailureReason.INVALID_STATE, reservation, status=reservation.status)
    return None


async def check_out(
    db: AsyncSession,
    reservation_id: int,
    actor: Optional[User] = None,
    now: Optional[datetime] = None,
    forced: bool = False,
) -> LifecycleResult:
    """Check out of a checked-in reservation. `forced` marks sweep remediation."""
    now = now or utcnow()
    operation = "forced_check_out" if forced else "check_out"

    reservation, failed = await _load(db, reservation_id, actor)
    if failed:
        return _finish(operation, failed)

    failed = _check_out_guard(reservation)
    if failed:
        return _finish(operation, failed)

    await reservation_store.transition(
        db, reservation, ReservationStatus.COMPLETED, now, check_out_time=now
    )
    logger.info(
        "reservation_checked_out",
        reservation_id=reservation.id,
        user_id=reservation.user_id,
        forced=forced,
    )
    return _finish(operation, LifecycleResult.success(reservation))


async def temp_release(
    db: AsyncSession,
    reservation_id: int,
    duration_minutes: int,
    reason: str,
    actor: Optional[User] = None,
    now: Optional[datetime] = None,
) -> LifecycleResult:
    """Vacate the seat for 5-120 minutes while keeping the reservation."""
    now = now or utcnow()

    reservation, failed = await _load(db, reservation_id, actor)
    if failed:
        return _finish("temp_release", failed)

    failed = _check_out_guard(reservation)
    if failed:
        return _finish("temp_release", failed)

    if not valid_temp_release_duration(duration_minutes):
        return _finish(
            "temp_release",
            LifecycleResult.failure(FailureReason.INVALID_DURATION, reservation, duration=duration_minutes),
        )

    expiry = now + timedelta(minutes=duration_minutes)
    await reservation_store.transition(
        db,
        reservation,
        ReservationStatus.TEMPORARILY_RELEASED,
        now,
        temp_release_time=now,
        temp_release_duration=duration_minutes,
        temp_release_reason=reason or "",
        temp_release_expiry_time=expiry,
    )
    logger.info(
        "reservation_temp_released",
        reservation_id=reservation.id,
        duration_minutes=duration_minutes,
        expires_at=expiry.isoformat(),
    )
    return _finish("temp_release", LifecycleResult.success(reservation))


async def resume(
    db: AsyncSession,
    reservation_id: int,
    actor: Optional[User] = None,
    now: Optional[datetime] = None,
) -> LifecycleResult:
    """
    Take a temporarily released seat back. Allowed even after the expiry
    instant as long as the expiry sweep has not cancelled it yet.
    """
    now = now or utcnow()

    reservation, failed = await _load(db, reservation_id, actor)
    if failed:
        return _finish("resume", failed)

    if not can_resume(reservation):
        return _finish(
            "resume",
            LifecycleResult.failure(FailureReason.INVALID_STATE, reservation, status=reservation.status),
        )

    await reservation_store.transition(
        db,
        reservation,
        ReservationStatus.CONFIRMED,
        now,
        temp_release_time=None,
        temp_release_duration=None,
        temp_release_reason=None,
        temp_release_expiry_time=None,
    )
    logger.info("reservation_resumed", reservation_id=reservation.id)
    return _finish("resume", LifecycleResult.success(reservation))


async def run_expiry_sweep(db: AsyncSession, now: Optional[datetime] = None) -> ExpirySummary:
    """
    Close out reservations whose grace has run out:
    - temporarily released past tempReleaseExpiryTime -> cancelled
    - pending past the end of the check-in window -> expired
    """
    now = now or utcnow()
    summary = ExpirySummary()

    released = await reservation_store.find_reservations(
        db,
        Reservation.status == ReservationStatus.TEMPORARILY_RELEASED.value,
        Reservation.temp_release_expiry_time < now,
    )
    for candidate in released:
        reservation = await reservation_store.get_reservation(db, candidate.id, for_update=True)
        if reservation is None or not temp_release_expired(reservation, now):
            continue
        await reservation_store.transition(
            db,
            reservation,
            ReservationStatus.CANCELLED,
            now,
            check_out_time=now,
            temp_release_time=None,
            temp_release_duration=None,
            temp_release_reason=None,
            temp_release_expiry_time=None,
        )
        summary.temp_released_cancelled.append(reservation.id)
        record_lifecycle("temp_release_expiry", "ok")
        logger.info("temp_release_expired", reservation_id=reservation.id, user_id=reservation.user_id)

    missed = await reservation_store.find_reservations(
        db,
        Reservation.status == ReservationStatus.PENDING.value,
        predicate=lambda r: check_in_window_closed(r, now),
    )
    for candidate in missed:
        reservation = await reservation_store.get_reservation(db, candidate.id, for_update=True)
        if (
            reservation is None
            or reservation.status != ReservationStatus.PENDING
            or not check_in_window_closed(reservation, now)
        ):
            continue
        await reservation_store.transition(db, reservation, ReservationStatus.EXPIRED, now)
        summary.pending_expired.append(reservation.id)
        record_lifecycle("pending_expiry", "ok")
        logger.info("reservation_expired", reservation_id=reservation.id, user_id=reservation.user_id)

    return summary
