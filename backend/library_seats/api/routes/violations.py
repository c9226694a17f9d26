"""
Violation ledger endpoints. Descriptions and penalties are rendered to text
here; the ledger itself stores codes and structured details.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from library_seats.db.session import get_db
from library_seats.db.types import utcnow
from library_seats.models.user import User
from library_seats.schemas.violation import ViolationCreate, ViolationResponse
from library_seats.services import violation_ledger
from library_seats.core.security import get_current_user, require_admin

router = APIRouter(prefix="/violations", tags=["Violations"])


@router.get("/", response_model=list[ViolationResponse])
async def list_violations_endpoint(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    violations = await violation_ledger.list_violations(db)
    return [ViolationResponse.from_violation(v) for v in violations]


@router.get("/unresolved", response_model=list[ViolationResponse])
async def list_unresolved_endpoint(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    violations = await violation_ledger.list_unresolved_violations(db)
    return [ViolationResponse.from_violation(v) for v in violations]


@router.get("/me", response_model=list[ViolationResponse])
async def list_my_violations(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    violations = await violation_ledger.list_violations_by_user(db, user.id)
    return [ViolationResponse.from_violation(v) for v in violations]


@router.post("/", response_model=ViolationResponse, status_code=status.HTTP_201_CREATED)
async def create_violation_endpoint(
    body: ViolationCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Manual entry by an admin. Counts toward the user's violation_count."""
    if await db.get(User, body.user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    violation = await violation_ledger.add_violation(
        db,
        user_id=body.user_id,
        type=body.type,
        penalty=body.penalty,
        reservation_id=body.reservation_id,
        severity=body.severity,
        description=body.description,
        now=utcnow(),
    )
    return ViolationResponse.from_violation(violation)


@router.post("/{violation_id}/resolve", response_model=ViolationResponse)
async def resolve_violation_endpoint(
    violation_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    violation = await violation_ledger.resolve_violation(
        db, violation_id, resolved_by=admin.id, now=utcnow()
    )
    if violation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Violation not found")
    return ViolationResponse.from_violation(violation)
