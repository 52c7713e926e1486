"""
FastAPI dependencies for authentication.

Admins manage rules, settings, customers and recalculation runs. Managers
have read access and may run on-demand evaluations.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.auth.jwt import get_token_from_cookie, verify_token
from loyalty.db import get_db
from loyalty.models import User, UserRole

STAFF_ROLES = (UserRole.ADMIN, UserRole.MANAGER)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


async def _load_user(request: Request, db: AsyncSession) -> User:
    """Resolve the cookie token to a user row or raise 401."""
    token = get_token_from_cookie(request)
    if not token:
        raise _unauthorized("Not authenticated")

    payload = verify_token(token)
    if not payload:
        raise _unauthorized("Invalid or expired token")

    user = await db.get(User, payload["user_id"])
    if not user:
        raise _unauthorized("User not found")

    return user


async def get_current_user_optional(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Current active user, or None without raising."""
    try:
        user = await _load_user(request, db)
    except HTTPException:
        return None
    return user if user.is_active else None


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Current authenticated user.

    Raises 401 if not authenticated, 403 if the account is disabled.
    """
    user = await _load_user(request, db)
    if not user.is_active:
        raise _forbidden("User account is disabled")
    return user


async def require_staff(
    current_user: User = Depends(get_current_user),
) -> User:
    """Require an admin or manager."""
    if current_user.role not in STAFF_ROLES:
        raise _forbidden("Access denied")
    return current_user


async def require_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """Require an admin."""
    if current_user.role != UserRole.ADMIN:
        raise _forbidden("Admin access required")
    return current_user
