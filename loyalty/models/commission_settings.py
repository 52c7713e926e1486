"""
CommissionSettings model: the global fallback configuration.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from loyalty.models.base import BaseModel

DEFAULT_TIER_MULTIPLIERS = {
    "lead": 1.0,
    "silver": 1.2,
    "gold": 1.5,
    "platinum": 2.0,
}


class CommissionSettings(BaseModel):
    """
    Versioned commission settings.

    Exactly one row is active at a time. Saving new settings deactivates the
    current row and inserts a new one, so older rows form the history and
    sales can reference the version they were computed with.
    """

    __tablename__ = "commission_settings"

    base_commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("5.00"),
        comment="Percent of the sale amount (0-100)",
    )
    cashback_rate: Mapped[Decimal] = mapped_column(
        Numeric(10, 4),
        nullable=False,
        default=Decimal("2.0"),
        comment="Currency paid per liter sold",
    )
    tier_multipliers: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=lambda: dict(DEFAULT_TIER_MULTIPLIERS),
    )
    commission_cap: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="NULL means the configured default cap applies",
    )

    # Stored for the admin UI, not used by the calculation
    minimum_active_users: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=10,
    )
    payout_threshold: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("50.00"),
    )
    payout_frequency: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="monthly",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )
    created_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<CommissionSettings(id={self.id}, active={self.is_active})>"
