"""
User endpoints.
"""

from fastapi import APIRouter, Depends

from library_seats.models.user import User
from library_seats.schemas.user import UserResponse
from library_seats.core.security import get_current_user

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def read_me(user: User = Depends(get_current_user)):
    """Profile of the caller, including violation_count and the booking ban."""
    return user
