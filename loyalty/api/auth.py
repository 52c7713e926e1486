"""
Authentication API endpoints.

Only staff accounts (admin, manager) log in; customers are records without
a password.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.auth.dependencies import STAFF_ROLES, get_current_user_optional, require_staff
from loyalty.auth.jwt import COOKIE_NAME, create_access_token
from loyalty.config import settings
from loyalty.db import get_db
from loyalty.models import AuditAction, User, UserRole
from loyalty.schemas.auth import LoginRequest, LoginResponse, StaffProfileResponse
from loyalty.utils.audit import get_client_ip, log_action
from loyalty.utils.password import hash_password, needs_rehash, verify_password

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _cookie_options() -> dict:
    return {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "lax",
    }


@router.post("/login", response_model=LoginResponse)
async def login(
    request: Request,
    response: Response,
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """Check staff credentials and set the JWT cookie."""
    user = await db.scalar(
        select(User).where(User.username == credentials.username)
    )

    if not user or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    if not user.is_active or user.role not in STAFF_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled",
        )

    response.set_cookie(
        key=COOKIE_NAME,
        value=create_access_token(user.id, user.role.value),
        max_age=settings.jwt_expire_hours * 3600,
        **_cookie_options(),
    )

    user.last_active_at = datetime.now(timezone.utc)
    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(credentials.password)

    await log_action(
        db=db,
        user_id=user.id,
        action=AuditAction.LOGIN,
        ip_address=get_client_ip(request),
    )

    return LoginResponse(
        success=True,
        message="Login successful",
        role=user.role.value,
    )


@router.get("/me", response_model=StaffProfileResponse)
async def current_profile(
    current_user: User = Depends(require_staff),
):
    """Profile of the logged-in staff user."""
    return StaffProfileResponse(
        id=current_user.id,
        username=current_user.username,
        display_name=current_user.display_name,
        role=current_user.role.value,
        can_manage=current_user.role == UserRole.ADMIN,
        last_active_at=current_user.last_active_at,
    )


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user_optional),
):
    """Clear the JWT cookie."""
    if current_user:
        await log_action(
            db=db,
            user_id=current_user.id,
            action=AuditAction.LOGOUT,
            ip_address=get_client_ip(request),
        )

    response.delete_cookie(key=COOKIE_NAME, **_cookie_options())

    return {"success": True, "message": "Logged out"}
