"""Commission rule, settings and evaluation schemas."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from loyalty.models.commission_rule import RuleType
from loyalty.models.user import Tier


class RuleConditionsSchema(BaseModel):
    """Rule conditions; unknown keys are rejected instead of silently ignored."""

    model_config = {"extra": "forbid"}

    minimum_sales: Optional[Decimal] = Field(None, ge=0)
    minimum_users: Optional[int] = Field(None, ge=0)
    minimum_growth: Optional[Decimal] = Field(None, ge=0)
    tier_restrictions: List[Tier] = Field(default_factory=list)

    def to_json(self) -> dict:
        """Stored form: unset conditions are left out."""
        data = self.model_dump(mode="json", exclude_none=True)
        if not data.get("tier_restrictions"):
            data.pop("tier_restrictions", None)
        for key in ("minimum_sales", "minimum_growth"):
            if key in data:
                data[key] = float(data[key])
        return data


class _ValidityWindowMixin(BaseModel):

    @field_validator("valid_from", "valid_until", mode="after", check_fields=False)
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def check_window(self):
        valid_from = getattr(self, "valid_from", None)
        valid_until = getattr(self, "valid_until", None)
        if valid_from and valid_until and valid_until < valid_from:
            raise ValueError("valid_until must not be earlier than valid_from")
        return self


class CommissionRuleCreate(_ValidityWindowMixin):
    """Create a commission rule."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    rate: Decimal = Field(..., ge=0, le=1000)
    type: RuleType
    priority: int = Field(default=0, ge=0, le=100)
    conditions: RuleConditionsSchema = Field(default_factory=RuleConditionsSchema)
    is_active: bool = True
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None

    @field_validator("name", "description")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class CommissionRuleUpdate(_ValidityWindowMixin):
    """Partial update of a commission rule."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    rate: Optional[Decimal] = Field(None, ge=0, le=1000)
    type: Optional[RuleType] = None
    priority: Optional[int] = Field(None, ge=0, le=100)
    conditions: Optional[RuleConditionsSchema] = None
    is_active: Optional[bool] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None

    @field_validator("name", "description")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class CommissionRuleToggle(BaseModel):
    """Activate or deactivate a rule."""

    is_active: bool


class CommissionRuleResponse(BaseModel):
    """Commission rule as returned by the admin API."""

    id: int
    name: str
    description: str
    rate: Decimal
    type: RuleType = Field(validation_alias="rule_type")
    priority: int
    conditions: dict
    is_active: bool
    valid_from: Optional[datetime]
    valid_until: Optional[datetime]
    created_by_id: Optional[int]
    updated_by_id: Optional[int]
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True, "populate_by_name": True}


class CommissionCalculateRequest(BaseModel):
    """On-demand evaluation input (camelCase, as sent by the admin frontend)."""

    model_config = {"populate_by_name": True}

    sales_amount: Decimal = Field(..., ge=0, alias="salesAmount")
    user_tier: Tier = Field(default=Tier.LEAD, alias="userTier")
    network_size: int = Field(default=0, ge=0, alias="networkSize")
    growth_rate: Decimal = Field(default=Decimal("0"), ge=0, alias="growthRate")
    sales_count: Optional[int] = Field(None, ge=0, alias="salesCount")
    liters: Decimal = Field(default=Decimal("0"), ge=0)


class CommissionResultResponse(BaseModel):
    """A CommissionResult."""

    commission_amount: Decimal
    commission_rate: Decimal
    cashback_amount: Decimal
    rule_used: str
    rule_name: Optional[str] = None
    tier: Tier
    settings_snapshot: dict

    model_config = {"from_attributes": True}


class TierMultipliers(BaseModel):
    """Multiplier per tier; every tier must be given."""

    lead: float = Field(..., ge=0)
    silver: float = Field(..., ge=0)
    gold: float = Field(..., ge=0)
    platinum: float = Field(..., ge=0)


class CommissionSettingsUpdate(BaseModel):
    """New settings version."""

    base_commission_rate: Decimal = Field(..., ge=0, le=100)
    cashback_rate: Decimal = Field(..., ge=0, le=100)
    tier_multipliers: TierMultipliers
    commission_cap: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    minimum_active_users: int = Field(default=10, ge=0)
    payout_threshold: Decimal = Field(default=Decimal("50.00"), ge=0)
    payout_frequency: str = Field(default="monthly", pattern="^(weekly|monthly|quarterly)$")


class CommissionSettingsResponse(BaseModel):
    """A settings version."""

    id: int
    base_commission_rate: Decimal
    cashback_rate: Decimal
    tier_multipliers: Dict[str, float]
    commission_cap: Optional[Decimal]
    effective_commission_cap: Optional[Decimal] = None
    minimum_active_users: int
    payout_threshold: Decimal
    payout_frequency: str
    is_active: bool
    created_by_id: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class CommissionSettingsListResponse(BaseModel):
    """Paginated settings history."""

    items: List[CommissionSettingsResponse]
    total: int
    page: int
    per_page: int
    pages: int


class SettingsCalculateRequest(BaseModel):
    """Fallback-path test calculation."""

    tier: Tier
    sales_amount: Decimal = Field(..., gt=0)
