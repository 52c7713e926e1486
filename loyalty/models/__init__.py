"""
Database models for the loyalty admin backend.

All models are exported here for convenient imports:
    from loyalty.models import User, Sale, CommissionRule, etc.
"""

from loyalty.models.audit import AuditAction, AuditLog
from loyalty.models.base import Base, BaseModel, TimestampMixin
from loyalty.models.commission_rule import CommissionRule, RuleType
from loyalty.models.commission_settings import DEFAULT_TIER_MULTIPLIERS, CommissionSettings
from loyalty.models.sale import Sale
from loyalty.models.user import Tier, User, UserRole

__all__ = [
    # Base
    "Base",
    "BaseModel",
    "TimestampMixin",
    # User
    "User",
    "UserRole",
    "Tier",
    # Commission
    "CommissionRule",
    "RuleType",
    "CommissionSettings",
    "DEFAULT_TIER_MULTIPLIERS",
    # Sale
    "Sale",
    # Audit
    "AuditLog",
    "AuditAction",
]
