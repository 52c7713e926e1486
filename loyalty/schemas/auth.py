"""Authentication schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Login request body."""

    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    """Login response."""

    success: bool
    message: str
    role: str = Field(default="")


class StaffProfileResponse(BaseModel):
    """The logged-in staff user."""

    id: int
    username: str
    display_name: str
    role: str
    can_manage: bool
    last_active_at: Optional[datetime] = None
