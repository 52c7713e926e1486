"""
Immutable values the commission engine works on.

The calculators never touch the database. Callers load the active rules and
settings once, turn them into these snapshots and pass them in, so every
evaluation sees one consistent view and concurrent requests share no state.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, FrozenSet, Optional, Tuple

from loyalty.models.commission_rule import RuleType
from loyalty.models.user import Tier
from loyalty.services.errors import ValidationError

FALLBACK_RULE = "fallback"

MAX_RULE_RATE = Decimal("1000")
MIN_PRIORITY = 0
MAX_PRIORITY = 100


def to_decimal(value) -> Decimal:
    """Convert ints, floats and numeric strings to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def parse_tier(value) -> Tier:
    """Resolve a tier name case-insensitively."""
    if isinstance(value, Tier):
        return value
    try:
        return Tier(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown tier: {value!r}")


@dataclass(frozen=True)
class RuleConditions:
    """Optional constraints a sale has to satisfy for a rule to apply."""

    minimum_sales: Optional[Decimal] = None
    minimum_users: Optional[int] = None
    minimum_growth: Optional[Decimal] = None
    tier_restrictions: FrozenSet[Tier] = frozenset()

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "RuleConditions":
        """Build from the JSON stored on a rule row."""
        if not data:
            return cls()

        known = {"minimum_sales", "minimum_users", "minimum_growth", "tier_restrictions"}
        unknown = set(data) - known
        if unknown:
            raise ValidationError(f"Unknown condition keys: {', '.join(sorted(unknown))}")

        minimum_sales = data.get("minimum_sales")
        minimum_users = data.get("minimum_users")
        minimum_growth = data.get("minimum_growth")
        return cls(
            minimum_sales=to_decimal(minimum_sales) if minimum_sales is not None else None,
            minimum_users=int(minimum_users) if minimum_users is not None else None,
            minimum_growth=to_decimal(minimum_growth) if minimum_growth is not None else None,
            tier_restrictions=frozenset(
                parse_tier(t) for t in (data.get("tier_restrictions") or [])
            ),
        )


@dataclass(frozen=True)
class RuleSnapshot:
    """A commission rule as seen by one evaluation."""

    id: int
    name: str
    rate: Decimal
    rule_type: RuleType
    priority: int = 0
    conditions: RuleConditions = field(default_factory=RuleConditions)
    is_active: bool = True
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None

    def __post_init__(self):
        validate_rule_fields(self.rate, self.rule_type, self.priority)

    def is_valid_at(self, moment: datetime) -> bool:
        """Whether the rule's validity window contains ``moment``."""
        if self.valid_from is not None and moment < self.valid_from:
            return False
        if self.valid_until is not None and moment > self.valid_until:
            return False
        return True


def validate_rule_fields(rate, rule_type, priority) -> None:
    """
    Check the bounds every stored rule must respect.

    Raises:
        ValidationError: rate outside [0, 1000], unknown type,
            or priority outside [0, 100]
    """
    if not isinstance(rule_type, RuleType):
        try:
            RuleType(rule_type)
        except ValueError:
            raise ValidationError(f"Unknown rule type: {rule_type!r}")

    try:
        rate = to_decimal(rate)
    except ArithmeticError:
        raise ValidationError(f"Rate is not a number: {rate!r}")
    if not rate.is_finite() or rate < 0 or rate > MAX_RULE_RATE:
        raise ValidationError(f"Rate must be between 0 and {MAX_RULE_RATE}, got {rate}")

    if isinstance(priority, bool) or not isinstance(priority, int):
        raise ValidationError(f"Priority must be an integer, got {priority!r}")
    if priority < MIN_PRIORITY or priority > MAX_PRIORITY:
        raise ValidationError(
            f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}, got {priority}"
        )


@dataclass(frozen=True)
class SettingsSnapshot:
    """The global commission settings captured at one instant."""

    base_commission_rate: Decimal
    cashback_rate: Decimal
    commission_cap: Decimal
    tier_multipliers: Dict[str, Decimal] = field(default_factory=dict)
    settings_id: Optional[int] = None

    def tier_multiplier(self, tier) -> Decimal:
        """Multiplier for ``tier``; 1.0 for tiers the settings do not list."""
        key = tier.value if isinstance(tier, Tier) else str(tier).lower()
        return self.tier_multipliers.get(key, Decimal("1.0"))

    def as_dict(self) -> dict:
        """Audit copy of the values used, stored next to each result."""
        return {
            "settings_id": self.settings_id,
            "base_commission_rate": float(self.base_commission_rate),
            "cashback_rate": float(self.cashback_rate),
            "commission_cap": float(self.commission_cap),
            "tier_multipliers": {
                tier: float(value) for tier, value in sorted(self.tier_multipliers.items())
            },
        }


@dataclass(frozen=True)
class CommissionSnapshot:
    """Settings plus the active rule set, loaded together once."""

    settings: SettingsSnapshot
    rules: Tuple[RuleSnapshot, ...] = ()
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class SaleContext:
    """Inputs for evaluating one sale."""

    total_amount: Decimal
    liters: Decimal
    user_tier: Tier
    sales_count: Optional[Decimal] = None
    network_size: Optional[int] = None
    growth_rate: Optional[Decimal] = None
    as_of: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class CommissionResult:
    """Outcome of one evaluation, handed back to the caller for persistence."""

    commission_amount: Decimal
    commission_rate: Decimal
    cashback_amount: Decimal
    rule_used: str
    settings_snapshot: dict
    tier: Tier
    rule_name: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.rule_used == FALLBACK_RULE
