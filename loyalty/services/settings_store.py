"""
Loading commission snapshots from the database.

The API and the recalculation job both go through here, so a rule row or a
settings row always turns into the same snapshot values.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.config import settings as app_settings
from loyalty.models import CommissionRule, CommissionSettings
from loyalty.services.errors import NotFoundError
from loyalty.services.snapshots import (
    CommissionSnapshot,
    RuleConditions,
    RuleSnapshot,
    SettingsSnapshot,
    to_decimal,
)

logger = logging.getLogger(__name__)


def _aware(moment: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; stored values are UTC
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def rule_to_snapshot(rule: CommissionRule) -> RuleSnapshot:
    """Convert a rule row, validating its bounds on the way."""
    return RuleSnapshot(
        id=rule.id,
        name=rule.name,
        rate=to_decimal(rule.rate),
        rule_type=rule.rule_type,
        priority=rule.priority,
        conditions=RuleConditions.from_dict(rule.conditions),
        is_active=rule.is_active,
        valid_from=_aware(rule.valid_from),
        valid_until=_aware(rule.valid_until),
    )


def settings_to_snapshot(
    row: CommissionSettings,
    default_cap: Optional[Decimal] = None,
) -> SettingsSnapshot:
    """Convert a settings row; an unset cap becomes the configured default."""
    if default_cap is None:
        default_cap = app_settings.default_commission_cap

    cap = row.commission_cap if row.commission_cap is not None else default_cap

    return SettingsSnapshot(
        base_commission_rate=to_decimal(row.base_commission_rate),
        cashback_rate=to_decimal(row.cashback_rate),
        commission_cap=to_decimal(cap),
        tier_multipliers={
            str(tier).lower(): to_decimal(value)
            for tier, value in (row.tier_multipliers or {}).items()
        },
        settings_id=row.id,
    )


async def get_active_settings_row(db: AsyncSession) -> CommissionSettings:
    """
    Get the active settings row (newest first if several are flagged active).

    Raises:
        NotFoundError: no active settings exist
    """
    result = await db.execute(
        select(CommissionSettings)
        .where(CommissionSettings.is_active == True)
        .order_by(CommissionSettings.created_at.desc(), CommissionSettings.id.desc())
        .limit(1)
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFoundError("Commission settings not found")
    return row


async def load_settings_snapshot(db: AsyncSession) -> SettingsSnapshot:
    """Snapshot of the active settings."""
    return settings_to_snapshot(await get_active_settings_row(db))


async def load_active_rules(db: AsyncSession) -> List[RuleSnapshot]:
    """
    Active rules ordered by priority, oldest first within a priority.

    The selector keeps this order for ties.
    """
    result = await db.execute(
        select(CommissionRule)
        .where(CommissionRule.is_active == True)
        .order_by(
            CommissionRule.priority.desc(),
            CommissionRule.created_at.asc(),
            CommissionRule.id.asc(),
        )
    )
    return [rule_to_snapshot(rule) for rule in result.scalars().all()]


async def load_commission_snapshot(db: AsyncSession) -> CommissionSnapshot:
    """Settings and active rules read in one session."""
    settings_snapshot = await load_settings_snapshot(db)
    rules = await load_active_rules(db)

    logger.info(
        f"Loaded commission snapshot: settings #{settings_snapshot.settings_id}, "
        f"{len(rules)} active rules"
    )

    return CommissionSnapshot(settings=settings_snapshot, rules=tuple(rules))
