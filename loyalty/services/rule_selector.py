"""
Commission rule selection.

Rules are tried in descending priority. Python's sort is stable, so rules
with equal priority keep the order they were passed in; the database loader
passes them oldest first, which makes the earliest-created rule win a tie.
"""

import logging
from decimal import Decimal
from typing import Iterable, List, Optional

from loyalty.services.snapshots import RuleConditions, RuleSnapshot, SaleContext

logger = logging.getLogger(__name__)


def _at_least(value, minimum) -> bool:
    # Absent context values count as zero
    if value is None:
        value = 0
    return Decimal(str(value)) >= Decimal(str(minimum))


def conditions_match(conditions: RuleConditions, context: SaleContext) -> bool:
    """
    Check whether a sale satisfies every condition that is set on a rule.

    Unset conditions impose no constraint. An empty tier restriction set
    allows every tier.
    """
    if conditions.minimum_sales is not None:
        if not _at_least(context.sales_count, conditions.minimum_sales):
            return False

    if conditions.minimum_users is not None:
        if not _at_least(context.network_size, conditions.minimum_users):
            return False

    if conditions.minimum_growth is not None:
        if not _at_least(context.growth_rate, conditions.minimum_growth):
            return False

    if conditions.tier_restrictions:
        if context.user_tier not in conditions.tier_restrictions:
            return False

    return True


def order_rules(rules: Iterable[RuleSnapshot], context: SaleContext) -> List[RuleSnapshot]:
    """Active rules valid at ``context.as_of``, highest priority first."""
    candidates = [
        rule for rule in rules
        if rule.is_active and rule.is_valid_at(context.as_of)
    ]
    return sorted(candidates, key=lambda rule: rule.priority, reverse=True)


def select_rule(
    rules: Iterable[RuleSnapshot],
    context: SaleContext,
) -> Optional[RuleSnapshot]:
    """
    Pick the rule that applies to a sale.

    Args:
        rules: Rule set of one snapshot, in creation order
        context: The sale being evaluated

    Returns:
        The highest-priority matching rule, or None when the caller
        should use the settings fallback
    """
    for rule in order_rules(rules, context):
        if conditions_match(rule.conditions, context):
            logger.debug(f"Rule {rule.id} ({rule.name}) matched at priority {rule.priority}")
            return rule

    return None
