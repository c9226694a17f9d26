"""
Violation ledger: append-only record of violations.

Rows are created by the sweep or by an admin, mutated only by resolution,
and never deleted.
"""

from datetime import datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from library_seats.db.types import utcnow
from library_seats.models.user import User
from library_seats.models.violation import Violation, ViolationType, Severity
from library_seats.core.metrics import record_violation
from library_seats.core.logging import get_logger

logger = get_logger(__name__)


def utc_day_bounds(instant: datetime) -> tuple[datetime, datetime]:
    """[midnight, next midnight) of the UTC calendar day containing `instant`."""
    day = instant.astimezone(timezone.utc).date()
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


async def add_violation(
    db: AsyncSession,
    user_id: int,
    type: ViolationType,
    penalty: str,
    reservation_id: Optional[int] = None,
    rule_id: Optional[str] = None,
    severity: Optional[Severity] = None,
    details: Optional[dict] = None,
    description: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Violation:
    """Append a violation and bump the user's violation_count."""
    now = now or utcnow()
    violation = Violation(
        user_id=user_id,
        reservation_id=reservation_id,
        type=ViolationType(type).value,
        rule_id=rule_id,
        severity=Severity(severity).value if severity else None,
        details=details or {},
        description=description,
        penalty=penalty,
        is_resolved=False,
        created_at=now,
    )
    db.add(violation)

    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(violation_count=User.violation_count + 1)
    )
    await db.flush()
    await db.refresh(violation)

    record_violation(violation.type)
    logger.info(
        "violation_recorded",
        violation_id=violation.id,
        user_id=user_id,
        type=violation.type,
        reservation_id=reservation_id,
        rule_id=rule_id,
    )
    return violation


async def get_violation(db: AsyncSession, violation_id: int) -> Optional[Violation]:
    result = await db.execute(select(Violation).where(Violation.id == violation_id))
    return result.scalar_one_or_none()


async def resolve_violation(
    db: AsyncSession,
    violation_id: int,
    resolved_by: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Optional[Violation]:
    """Mark resolved. Resolving again overwrites resolved_at and resolved_by."""
    violation = await get_violation(db, violation_id)
    if violation is None:
        return None

    violation.is_resolved = True
    violation.resolved_at = now or utcnow()
    violation.resolved_by = resolved_by
    await db.flush()

    logger.info("violation_resolved", violation_id=violation_id, resolved_by=resolved_by)
    return violation


async def list_violations(db: AsyncSession) -> list[Violation]:
    result = await db.execute(select(Violation).order_by(Violation.created_at.desc(), Violation.id.desc()))
    return list(result.scalars().all())


async def list_violations_by_user(db: AsyncSession, user_id: int) -> list[Violation]:
    result = await db.execute(
        select(Violation)
        .where(Violation.user_id == user_id)
        .order_by(Violation.created_at.desc(), Violation.id.desc())
    )
    return list(result.scalars().all())


async def list_unresolved_violations(db: AsyncSession) -> list[Violation]:
    result = await db.execute(
        select(Violation)
        .where(Violation.is_resolved.is_(False))
        .order_by(Violation.created_at.desc(), Violation.id.desc())
    )
    return list(result.scalars().all())


async def find_duplicate(
    db: AsyncSession,
    user_id: int,
    type: ViolationType,
    reservation_id: Optional[int],
    day: datetime,
) -> Optional[Violation]:
    """
    Existing violation with the same user, type and reservation created on
    the same UTC calendar day as `day`. Uses ix_violations_user_type_created.
    """
    start, end = utc_day_bounds(day)
    query = select(Violation).where(
        Violation.user_id == user_id,
        Violation.type == ViolationType(type).value,
        Violation.created_at >= start,
        Violation.created_at < end,
    )
    if reservation_id is None:
        query = query.where(Violation.reservation_id.is_(None))
    else:
        query = query.where(Violation.reservation_id == reservation_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none()
