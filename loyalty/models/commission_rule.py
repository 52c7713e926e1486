"""
CommissionRule model: administrator-defined overrides of the base rate.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column

from loyalty.models.base import BaseModel


class RuleType(str, Enum):
    """How a rule's rate turns into a commission."""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class CommissionRule(BaseModel):
    """
    A commission rule.

    Active rules are evaluated by descending priority; the first one whose
    conditions match the sale wins. When none matches, the active
    CommissionSettings row is used instead.

    conditions JSON keys (all optional):
    - minimum_sales: number of sales the seller must have made
    - minimum_users: size of the seller's network
    - minimum_growth: growth rate in percent
    - tier_restrictions: list of tiers the rule is limited to
    """

    __tablename__ = "commission_rules"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )
    rate: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Percent of the sale (percentage) or currency amount (fixed)",
    )
    rule_type: Mapped[RuleType] = mapped_column(
        "type",
        SQLAlchemyEnum(
            RuleType,
            name="ruletype",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=RuleType.PERCENTAGE,
        nullable=False,
    )
    priority: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        index=True,
    )
    conditions: Mapped[dict] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )
    valid_from: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    valid_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    updated_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<CommissionRule(id={self.id}, name='{self.name}', "
            f"type={self.rule_type}, priority={self.priority})>"
        )
