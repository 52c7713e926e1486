"""
User model for staff authentication and customer loyalty tiers.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from loyalty.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from loyalty.models.audit import AuditLog
    from loyalty.models.sale import Sale


class UserRole(str, Enum):
    """User roles for access control."""
    ADMIN = "admin"
    MANAGER = "manager"
    CUSTOMER = "customer"


class Tier(str, Enum):
    """Loyalty tiers, lowest first."""
    LEAD = "lead"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class User(Base, TimestampMixin):
    """
    User account model.

    - admin: manages commission rules, settings and recalculation runs
    - manager: read access to the admin API and on-demand evaluation
    - customer: earns commission and cashback on sales, cannot log in
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        index=True,
        nullable=False,
    )
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="NULL for customers without panel access",
    )
    role: Mapped[UserRole] = mapped_column(
        SQLAlchemyEnum(
            UserRole,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    display_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    loyalty_tier: Mapped[Tier] = mapped_column(
        SQLAlchemyEnum(
            Tier,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=Tier.LEAD,
        server_default=Tier.LEAD.value,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    last_active_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    sales: Mapped[List["Sale"]] = relationship(
        "Sale",
        back_populates="user",
    )
    audit_logs: Mapped[List["AuditLog"]] = relationship(
        "AuditLog",
        back_populates="user",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', role={self.role})>"
