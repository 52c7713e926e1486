"""
Commission and cashback calculation.

Rules:
- A matching rule decides the raw commission: a percentage of the sale,
  or a fixed amount regardless of the sale amount
- Without a matching rule: base rate of the settings times the tier multiplier
- Either way the commission is clamped to the settings cap
- Cashback is liters x cashback rate x tier multiplier, never a share of the sale

Rates are percentages (5 = 5%) on both paths; tier multipliers are plain
factors (1.5 = x1.5) and apply to the fallback path and to cashback only.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, Optional, Tuple

from loyalty.models.commission_rule import RuleType
from loyalty.services.errors import ComputationError
from loyalty.services.rule_selector import select_rule
from loyalty.services.snapshots import (
    FALLBACK_RULE,
    CommissionResult,
    RuleSnapshot,
    SaleContext,
    SettingsSnapshot,
    to_decimal,
)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


def round2(value: Decimal) -> Decimal:
    """Round half-up to cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def cap_to_cents(cap: Decimal) -> Decimal:
    """The cap truncated to whole cents, so a rounded amount never exceeds it."""
    return to_decimal(cap).quantize(CENT, rounding=ROUND_DOWN)


def _percentage_of_sale(rule: RuleSnapshot, total_amount: Decimal) -> Decimal:
    return total_amount * rule.rate / HUNDRED


def _fixed_amount(rule: RuleSnapshot, total_amount: Decimal) -> Decimal:
    return rule.rate


RAW_COMMISSION: Dict[RuleType, Callable[[RuleSnapshot, Decimal], Decimal]] = {
    RuleType.PERCENTAGE: _percentage_of_sale,
    RuleType.FIXED: _fixed_amount,
}


def _require_non_negative(name: str, value) -> Decimal:
    try:
        value = to_decimal(value)
    except ArithmeticError:
        raise ComputationError(f"{name} is not a number: {value!r}")
    if not value.is_finite():
        raise ComputationError(f"{name} must be finite, got {value}")
    if value < 0:
        raise ComputationError(f"{name} must not be negative, got {value}")
    return value


def rule_commission(rule: RuleSnapshot, total_amount: Decimal) -> Decimal:
    """Raw (uncapped) commission under a rule."""
    try:
        compute = RAW_COMMISSION[rule.rule_type]
    except KeyError:
        raise ComputationError(f"No calculation for rule type {rule.rule_type!r}")
    return compute(rule, total_amount)


def fallback_commission(
    total_amount: Decimal,
    tier,
    settings: SettingsSnapshot,
) -> Decimal:
    """Raw (uncapped) commission from the base rate and tier multiplier."""
    base = total_amount * settings.base_commission_rate / HUNDRED
    return base * settings.tier_multiplier(tier)


def calculate_commission(
    context: SaleContext,
    settings: SettingsSnapshot,
    rule: Optional[RuleSnapshot] = None,
) -> Tuple[Decimal, Decimal]:
    """
    Calculate the capped commission for a sale.

    Args:
        context: The sale being evaluated
        settings: Settings snapshot supplying the cap (and the fallback rates)
        rule: The selected rule, or None for the fallback path

    Returns:
        (commission_amount, commission_rate) rounded to cents; the rate is the
        effective percentage of the sale amount, 0 when the amount is 0

    Raises:
        ComputationError: negative or non-numeric sale amount
    """
    total_amount = _require_non_negative("total_amount", context.total_amount)

    if rule is not None:
        raw = rule_commission(rule, total_amount)
    else:
        raw = fallback_commission(total_amount, context.user_tier, settings)

    commission_amount = min(round2(raw), cap_to_cents(settings.commission_cap))

    if total_amount > 0:
        commission_rate = round2(commission_amount / total_amount * HUNDRED)
    else:
        commission_rate = round2(ZERO)

    return commission_amount, commission_rate


def calculate_cashback(liters, tier, settings: SettingsSnapshot) -> Decimal:
    """
    Cashback for a sale: liters x cashback rate x tier multiplier.

    Raises:
        ComputationError: negative or non-numeric liters
    """
    liters = _require_non_negative("liters", liters)
    return round2(liters * settings.cashback_rate * settings.tier_multiplier(tier))


def evaluate_sale(
    context: SaleContext,
    settings: SettingsSnapshot,
    rules: Iterable[RuleSnapshot] = (),
) -> CommissionResult:
    """
    Evaluate a sale against one rule set and settings snapshot.

    Pure: the same inputs always give an equal result.
    """
    rule = select_rule(rules, context)
    commission_amount, commission_rate = calculate_commission(context, settings, rule)
    cashback_amount = calculate_cashback(context.liters, context.user_tier, settings)

    return CommissionResult(
        commission_amount=commission_amount,
        commission_rate=commission_rate,
        cashback_amount=cashback_amount,
        rule_used=str(rule.id) if rule is not None else FALLBACK_RULE,
        rule_name=rule.name if rule is not None else None,
        settings_snapshot=settings.as_dict(),
        tier=context.user_tier,
    )
