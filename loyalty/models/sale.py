"""
Sale model with the commission and cashback fields written by the engine.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from loyalty.models.base import BaseModel

if TYPE_CHECKING:
    from loyalty.models.commission_settings import CommissionSettings
    from loyalty.models.user import User


class Sale(BaseModel):
    """
    A recorded sale.

    commission_* fields hold the last CommissionResult for the sale. They are
    written when the sale is created and overwritten only by a recalculation
    run, always together with commission_settings_id and the snapshot of the
    settings values that produced them.
    """

    __tablename__ = "sales"

    sale_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        index=True,
        nullable=False,
    )
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    liters_sold: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )

    # Seller context at sale time, reused by recalculation runs
    network_size: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    growth_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2),
        nullable=True,
    )

    # Commission
    commission_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )
    commission_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 2),
        nullable=True,
        comment="Effective rate in percent of total_amount",
    )
    commission_calculated: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    commission_tier: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
    )
    commission_rule_used: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Rule id or 'fallback'",
    )
    commission_settings_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("commission_settings.id"),
        nullable=True,
    )
    commission_settings_snapshot: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
    )
    commission_recalculated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Cashback
    cashback_earned: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
    )

    # Relationships
    user: Mapped[Optional["User"]] = relationship(
        "User",
        back_populates="sales",
    )
    settings_used: Mapped[Optional["CommissionSettings"]] = relationship(
        "CommissionSettings",
    )

    def __repr__(self) -> str:
        return f"<Sale(id={self.id}, number='{self.sale_number}', total={self.total_amount})>"
