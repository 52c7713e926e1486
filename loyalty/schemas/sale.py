"""Sale and recalculation schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class SaleCreate(BaseModel):
    """Record a sale; commission and cashback are computed on creation."""

    sale_number: str = Field(..., min_length=1, max_length=50)
    user_id: int
    total_amount: Decimal = Field(..., ge=0, decimal_places=2)
    liters_sold: Decimal = Field(..., ge=0, decimal_places=2)
    network_size: Optional[int] = Field(None, ge=0)
    growth_rate: Optional[Decimal] = Field(None, ge=0, decimal_places=2)


class SaleResponse(BaseModel):
    """Sale with its last commission result."""

    id: int
    sale_number: str
    user_id: Optional[int]
    total_amount: Decimal
    liters_sold: Optional[Decimal]
    network_size: Optional[int]
    growth_rate: Optional[Decimal]
    commission_amount: Optional[Decimal]
    commission_rate: Optional[Decimal]
    commission_calculated: bool
    commission_tier: Optional[str]
    commission_rule_used: Optional[str]
    commission_settings_id: Optional[int]
    commission_settings_snapshot: Optional[dict]
    commission_recalculated_at: Optional[datetime]
    cashback_earned: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}


class SaleListResponse(BaseModel):
    """Paginated sales."""

    items: List[SaleResponse]
    total: int
    page: int
    per_page: int
    pages: int


class TierCommissionTotals(BaseModel):
    """Commission totals of one tier."""

    tier: str
    sales_count: int
    total_amount: Decimal
    commission_amount: Decimal
    cashback_earned: Decimal


class CommissionSummaryResponse(BaseModel):
    """Commission totals across all calculated sales."""

    sales_count: int
    total_amount: Decimal
    commission_amount: Decimal
    cashback_earned: Decimal
    by_tier: List[TierCommissionTotals]


class RecalculateRequest(BaseModel):
    """Start a recalculation run."""

    max_workers: Optional[int] = Field(None, ge=1, le=64)


class RecalculationError(BaseModel):
    sale_number: str
    error: Optional[str]


class RecalculationChange(BaseModel):
    sale_number: str
    before: Optional[float]
    after: float
    rule_used: str


class RecalculationSummaryResponse(BaseModel):
    """Counts of one recalculation run."""

    total: int
    updated: int
    skipped: int
    errored: int
    not_processed: int
    cancelled: bool
    settings_id: Optional[int]
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    errors: List[RecalculationError] = Field(default_factory=list)
    changes: List[RecalculationChange] = Field(default_factory=list)
