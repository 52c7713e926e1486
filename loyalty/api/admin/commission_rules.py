"""Admin commission rule API endpoints."""

import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.auth.dependencies import require_admin, require_staff
from loyalty.db import get_db
from loyalty.models import AuditAction, CommissionRule, User
from loyalty.schemas.commission import (
    CommissionCalculateRequest,
    CommissionResultResponse,
    CommissionRuleCreate,
    CommissionRuleResponse,
    CommissionRuleToggle,
    CommissionRuleUpdate,
)
from loyalty.services.commission import evaluate_sale
from loyalty.services.errors import NotFoundError, ValidationError
from loyalty.services.settings_store import load_commission_snapshot, rule_to_snapshot
from loyalty.services.snapshots import SaleContext
from loyalty.utils.audit import get_client_ip, log_action, snapshot_fields

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/commission-rules")

RULE_AUDIT_FIELDS = (
    "name",
    "description",
    "rate",
    "rule_type",
    "priority",
    "conditions",
    "is_active",
    "valid_from",
    "valid_until",
)


async def _get_rule(db: AsyncSession, rule_id: int) -> CommissionRule:
    rule = await db.get(CommissionRule, rule_id)
    if not rule:
        raise NotFoundError(f"Commission rule {rule_id} not found")
    return rule


@router.get("")
async def list_rules(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_staff),
    active_only: bool = Query(False),
):
    """List rules in evaluation order."""
    query = select(CommissionRule)
    if active_only:
        query = query.where(CommissionRule.is_active == True)

    query = query.order_by(
        CommissionRule.priority.desc(),
        CommissionRule.created_at.asc(),
        CommissionRule.id.asc(),
    )
    result = await db.execute(query)
    rules = result.scalars().all()

    return {
        "success": True,
        "items": [CommissionRuleResponse.model_validate(rule) for rule in rules],
        "total": len(rules),
    }


@router.post("/calculate")
async def calculate_commission(
    data: CommissionCalculateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    """Evaluate a hypothetical sale against the current rules and settings."""
    snapshot = await load_commission_snapshot(db)

    context = SaleContext(
        total_amount=data.sales_amount,
        liters=data.liters,
        user_tier=data.user_tier,
        sales_count=data.sales_count,
        network_size=data.network_size,
        growth_rate=data.growth_rate,
        as_of=snapshot.loaded_at,
    )
    result = evaluate_sale(context, snapshot.settings, snapshot.rules)

    return {
        "success": True,
        "result": CommissionResultResponse.model_validate(result),
    }


@router.get("/{rule_id}", response_model=CommissionRuleResponse)
async def get_rule(
    rule_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    """Get a rule by ID."""
    return await _get_rule(db, rule_id)


@router.post("", status_code=201)
async def create_rule(
    request: Request,
    data: CommissionRuleCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Create a commission rule."""
    rule = CommissionRule(
        name=data.name,
        description=data.description,
        rate=data.rate,
        rule_type=data.type,
        priority=data.priority,
        conditions=data.conditions.to_json(),
        is_active=data.is_active,
        valid_from=data.valid_from,
        valid_until=data.valid_until,
        created_by_id=current_user.id,
        updated_by_id=current_user.id,
    )
    # Same bounds the engine enforces when it loads the rule
    rule_to_snapshot(rule)

    db.add(rule)
    await db.flush()

    await log_action(
        db=db,
        user_id=current_user.id,
        action=AuditAction.CREATE_RULE,
        target_type="rule",
        target_id=rule.id,
        action_metadata={
            "before": None,
            "after": snapshot_fields(rule, RULE_AUDIT_FIELDS),
        },
        ip_address=get_client_ip(request),
    )

    await db.commit()
    await db.refresh(rule)

    logger.info(f"Commission rule {rule.id} '{rule.name}' created by {current_user.username}")

    return {"success": True, "rule": CommissionRuleResponse.model_validate(rule)}


@router.put("/{rule_id}")
async def update_rule(
    request: Request,
    rule_id: int,
    data: CommissionRuleUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Update a commission rule. Only the fields sent are changed."""
    rule = await _get_rule(db, rule_id)
    before = snapshot_fields(rule, RULE_AUDIT_FIELDS)

    update_data = data.model_dump(exclude_unset=True)

    if "type" in update_data:
        rule_type = update_data.pop("type")
        if rule_type is not None:
            rule.rule_type = rule_type

    if "conditions" in update_data:
        update_data.pop("conditions")
        rule.conditions = data.conditions.to_json() if data.conditions else {}

    for field, value in update_data.items():
        if value is None and field not in ("valid_from", "valid_until"):
            continue
        setattr(rule, field, value)

    rule.updated_by_id = current_user.id

    # Re-check the merged state, e.g. a new valid_until against the stored valid_from
    snapshot = rule_to_snapshot(rule)
    if (
        snapshot.valid_from is not None
        and snapshot.valid_until is not None
        and snapshot.valid_until < snapshot.valid_from
    ):
        raise ValidationError("valid_until must not be earlier than valid_from")

    await log_action(
        db=db,
        user_id=current_user.id,
        action=AuditAction.UPDATE_RULE,
        target_type="rule",
        target_id=rule.id,
        action_metadata={
            "before": before,
            "after": snapshot_fields(rule, RULE_AUDIT_FIELDS),
        },
        ip_address=get_client_ip(request),
    )

    await db.commit()
    await db.refresh(rule)

    logger.info(f"Commission rule {rule.id} updated by {current_user.username}")

    return {"success": True, "rule": CommissionRuleResponse.model_validate(rule)}


@router.delete("/{rule_id}")
async def delete_rule(
    request: Request,
    rule_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Delete a commission rule."""
    rule = await _get_rule(db, rule_id)
    before = snapshot_fields(rule, RULE_AUDIT_FIELDS)

    await db.delete(rule)

    await log_action(
        db=db,
        user_id=current_user.id,
        action=AuditAction.DELETE_RULE,
        target_type="rule",
        target_id=rule_id,
        action_metadata={"before": before, "after": None},
        ip_address=get_client_ip(request),
    )

    await db.commit()

    logger.info(f"Commission rule {rule_id} deleted by {current_user.username}")

    return {"success": True, "message": "Rule deleted"}


@router.patch("/{rule_id}/toggle")
async def toggle_rule(
    request: Request,
    rule_id: int,
    data: CommissionRuleToggle,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Activate or deactivate a rule."""
    rule = await _get_rule(db, rule_id)
    was_active = rule.is_active

    rule.is_active = data.is_active
    rule.updated_by_id = current_user.id

    await log_action(
        db=db,
        user_id=current_user.id,
        action=AuditAction.TOGGLE_RULE,
        target_type="rule",
        target_id=rule.id,
        action_metadata={
            "before": {"is_active": was_active},
            "after": {"is_active": data.is_active},
        },
        ip_address=get_client_ip(request),
    )

    await db.commit()
    await db.refresh(rule)

    return {"success": True, "rule": CommissionRuleResponse.model_validate(rule)}

