"""
Request identity.

Authentication happens upstream: the gateway verifies the session and
forwards the user id in the X-User-Id header. This module only resolves
that id to a User row and enforces the admin role.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from library_seats.db.session import get_db
from library_seats.models.user import User

USER_ID_HEADER = "X-User-Id"


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias=USER_ID_HEADER),
) -> int:
    """FastAPI dependency: the caller's user id from the gateway header."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {USER_ID_HEADER} header",
        )
    try:
        return int(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid {USER_ID_HEADER} header",
        )


async def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown or inactive user",
        )
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return user
