"""
Audit logging utilities.

Rule and settings changes and recalculation runs are recorded with the
acting user, the before/after state and a timestamp.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.models.audit import AuditAction, AuditLog


async def log_action(
    db: AsyncSession,
    user_id: Optional[int],
    action: AuditAction,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    action_metadata: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """
    Log an auditable action.

    Args:
        db: Database session
        user_id: ID of the user performing the action (None for system runs)
        action: Type of action being performed
        target_type: Type of entity affected (e.g., "rule", "settings")
        target_id: ID of the affected entity
        action_metadata: Additional context, usually {"before": ..., "after": ...}
        ip_address: Client IP address

    Returns:
        Created AuditLog entry
    """
    log_entry = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        action_metadata=action_metadata,
        ip_address=ip_address,
    )
    db.add(log_entry)
    # Note: commit should happen in the calling context
    return log_entry


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def snapshot_fields(obj: Any, fields: Iterable[str]) -> Optional[dict[str, Any]]:
    """
    JSON-safe copy of selected attributes, for before/after audit metadata.

    Returns None for a missing object (e.g. "before" of a created entity).
    """
    if obj is None:
        return None
    return {name: _json_value(getattr(obj, name)) for name in fields}


def get_client_ip(request) -> Optional[str]:
    """
    Extract client IP from request.

    Handles X-Forwarded-For header for reverse proxy setups.
    """
    # Check for X-Forwarded-For header (nginx, load balancers)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # First IP in the list is the client
        return forwarded_for.split(",")[0].strip()

    # Fall back to direct client IP
    if hasattr(request, "client") and request.client:
        return request.client.host

    return None
