"""Audit log schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class AuditLogResponse(BaseModel):
    """Audit log entry."""

    id: int
    user_id: Optional[int]
    username: str
    display_name: str
    action: str
    target_type: Optional[str]
    target_id: Optional[int]
    metadata: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    created_at: datetime


class AuditLogListResponse(BaseModel):
    """Paginated audit log list."""

    items: List[AuditLogResponse]
    total: int
    page: int
    per_page: int
    pages: int
