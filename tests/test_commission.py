"""
Tests for commission and cashback calculation.

Covers:
- Fallback path with tier multipliers and the cap
- Percentage and fixed rules (no tier multiplier on the rule path)
- Zero sale amount, negative inputs
- Cashback independence from the sale amount
- evaluate_sale determinism
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from loyalty.models import RuleType, Sale, Tier
from loyalty.services.commission import (
    RAW_COMMISSION,
    calculate_cashback,
    calculate_commission,
    evaluate_sale,
    round2,
)
from loyalty.services.errors import ComputationError
from loyalty.services.settings_store import settings_to_snapshot
from loyalty.services.snapshots import (
    FALLBACK_RULE,
    RuleConditions,
    RuleSnapshot,
    SaleContext,
    SettingsSnapshot,
)


def _settings(cap="1000", cashback_rate="0.5", base_rate="5"):
    return SettingsSnapshot(
        base_commission_rate=Decimal(base_rate),
        cashback_rate=Decimal(cashback_rate),
        commission_cap=Decimal(cap),
        tier_multipliers={
            "lead": Decimal("1.0"),
            "silver": Decimal("1.2"),
            "gold": Decimal("1.5"),
            "platinum": Decimal("2.0"),
        },
        settings_id=7,
    )


def _context(total="1000", liters="50", tier=Tier.GOLD, **kwargs):
    return SaleContext(
        total_amount=Decimal(total),
        liters=Decimal(liters),
        user_tier=tier,
        **kwargs,
    )


def _rule(rule_id=1, rate="10", rule_type=RuleType.PERCENTAGE, priority=10, tiers=()):
    return RuleSnapshot(
        id=rule_id,
        name=f"rule-{rule_id}",
        rate=Decimal(rate),
        rule_type=rule_type,
        priority=priority,
        conditions=RuleConditions(tier_restrictions=frozenset(tiers)),
    )


# ── Example scenarios ────────────────────────────────────


class TestScenarios:
    def test_fallback_with_gold_multiplier(self):
        result = evaluate_sale(_context(), _settings())

        assert result.rule_used == FALLBACK_RULE
        assert result.used_fallback
        assert result.commission_amount == Decimal("75.00")
        assert result.commission_rate == Decimal("7.50")
        assert result.cashback_amount == Decimal("37.50")

    def test_fallback_capped(self):
        result = evaluate_sale(_context(), _settings(cap="50"))

        assert result.commission_amount == Decimal("50.00")
        assert result.commission_rate == Decimal("5.00")
        assert result.cashback_amount == Decimal("37.50")

    def test_fixed_rule_ignores_zero_amount(self):
        rule = _rule(rate="20", rule_type=RuleType.FIXED, tiers=[Tier.GOLD])
        result = evaluate_sale(_context(total="0"), _settings(), [rule])

        assert result.rule_used == "1"
        assert result.commission_amount == Decimal("20.00")
        assert result.commission_rate == Decimal("0.00")

    def test_restricted_rule_falls_back(self):
        rule = _rule(rate="50", tiers=[Tier.PLATINUM])
        result = evaluate_sale(_context(tier=Tier.GOLD), _settings(), [rule])

        assert result.rule_used == FALLBACK_RULE
        assert result.commission_amount == Decimal("75.00")

    def test_higher_priority_rule_selected(self):
        low = _rule(rule_id=1, rate="10", priority=10)
        high = _rule(rule_id=2, rate="12", priority=20)
        result = evaluate_sale(_context(), _settings(), [low, high])

        assert result.rule_used == "2"
        assert result.rule_name == "rule-2"
        assert result.commission_amount == Decimal("120.00")


# ── calculate_commission ─────────────────────────────────


class TestCalculateCommission:
    def test_percentage_rule_is_rate_percent_of_total(self):
        amount, rate = calculate_commission(_context(total="250"), _settings(), _rule(rate="8"))
        assert amount == Decimal("20.00")
        assert rate == Decimal("8.00")

    def test_rule_path_has_no_tier_multiplier(self):
        for tier in Tier:
            amount, _ = calculate_commission(_context(tier=tier), _settings(), _rule(rate="10"))
            assert amount == Decimal("100.00")

    def test_fixed_rule_capped(self):
        amount, _ = calculate_commission(
            _context(), _settings(cap="15"), _rule(rate="20", rule_type=RuleType.FIXED)
        )
        assert amount == Decimal("15.00")

    @pytest.mark.parametrize("total", ["0", "0.01", "999.99", "1000000"])
    def test_never_exceeds_cap(self, total):
        settings = _settings(cap="100")
        for rule in (None, _rule(rate="1000"), _rule(rate="1000", rule_type=RuleType.FIXED)):
            amount, _ = calculate_commission(_context(total=total), settings, rule)
            assert amount <= settings.commission_cap

    def test_sub_cent_cap_is_floored(self):
        settings = _settings(cap="49.995")
        amount, _ = calculate_commission(_context(tier=Tier.LEAD), settings)

        assert amount == Decimal("49.99")
        assert amount <= settings.commission_cap

    def test_extreme_rate_fits_stored_column(self):
        rule = _rule(rate="1000", rule_type=RuleType.FIXED)
        _, rate = calculate_commission(_context(total="0.01"), _settings(), rule)

        assert rate == Decimal("10000000.00")
        column = Sale.__table__.c.commission_rate.type
        integer_digits = len(str(int(rate)))
        assert integer_digits <= column.precision - column.scale

    def test_zero_total_rate_is_zero(self):
        amount, rate = calculate_commission(_context(total="0"), _settings())
        assert amount == Decimal("0.00")
        assert rate == Decimal("0.00")

    def test_negative_total_rejected(self):
        with pytest.raises(ComputationError):
            calculate_commission(_context(total="-1"), _settings())

    def test_unknown_tier_multiplier_defaults_to_one(self):
        settings = SettingsSnapshot(
            base_commission_rate=Decimal("5"),
            cashback_rate=Decimal("1"),
            commission_cap=Decimal("1000"),
            tier_multipliers={},
        )
        amount, _ = calculate_commission(_context(tier=Tier.PLATINUM), settings)
        assert amount == Decimal("50.00")

    def test_half_up_rounding(self):
        assert round2(Decimal("0.125")) == Decimal("0.13")
        assert round2(Decimal("2.675")) == Decimal("2.68")

    def test_every_rule_type_has_a_calculation(self):
        assert set(RAW_COMMISSION) == set(RuleType)


# ── calculate_cashback ───────────────────────────────────


class TestCalculateCashback:
    def test_liters_times_rate_times_multiplier(self):
        assert calculate_cashback(Decimal("50"), Tier.GOLD, _settings()) == Decimal("37.50")
        assert calculate_cashback(Decimal("10"), Tier.PLATINUM, _settings()) == Decimal("10.00")

    def test_independent_of_sale_amount(self):
        small = evaluate_sale(_context(total="1"), _settings())
        large = evaluate_sale(_context(total="100000"), _settings())
        assert small.cashback_amount == large.cashback_amount

    def test_zero_liters(self):
        assert calculate_cashback(Decimal("0"), Tier.LEAD, _settings()) == Decimal("0.00")

    def test_negative_liters_rejected(self):
        with pytest.raises(ComputationError):
            calculate_cashback(Decimal("-5"), Tier.LEAD, _settings())


# ── evaluate_sale ────────────────────────────────────────


class TestEvaluateSale:
    def test_same_inputs_same_result(self):
        rules = [_rule(rule_id=1, priority=10), _rule(rule_id=2, priority=10, rate="3")]
        context = _context()
        settings = _settings()

        first = evaluate_sale(context, settings, rules)
        second = evaluate_sale(context, settings, rules)

        assert first == second

    def test_settings_snapshot_recorded(self):
        result = evaluate_sale(_context(), _settings())

        assert result.settings_snapshot["settings_id"] == 7
        assert result.settings_snapshot["commission_cap"] == 1000.0
        assert result.settings_snapshot["tier_multipliers"]["gold"] == 1.5
        assert result.tier == Tier.GOLD


# ── settings_to_snapshot ─────────────────────────────────


class TestSettingsToSnapshot:
    def _row(self, **kwargs):
        defaults = {
            "id": 3,
            "base_commission_rate": Decimal("5.00"),
            "cashback_rate": Decimal("2.0000"),
            "commission_cap": None,
            "tier_multipliers": {"lead": 1.0, "Gold": 1.5},
        }
        defaults.update(kwargs)
        return SimpleNamespace(**defaults)

    def test_unset_cap_uses_default(self):
        snapshot = settings_to_snapshot(self._row(), default_cap=Decimal("250.00"))
        assert snapshot.commission_cap == Decimal("250.00")

    def test_explicit_cap_kept(self):
        snapshot = settings_to_snapshot(self._row(commission_cap=Decimal("40")))
        assert snapshot.commission_cap == Decimal("40")

    def test_multipliers_normalised(self):
        snapshot = settings_to_snapshot(self._row())
        assert snapshot.tier_multiplier(Tier.GOLD) == Decimal("1.5")
        assert snapshot.tier_multiplier(Tier.SILVER) == Decimal("1.0")
        assert snapshot.settings_id == 3
