"""Admin commission settings API endpoints."""

import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.auth.dependencies import require_admin, require_staff
from loyalty.config import settings as app_settings
from loyalty.db import get_db
from loyalty.models import AuditAction, CommissionSettings, User
from loyalty.schemas.commission import (
    CommissionSettingsListResponse,
    CommissionSettingsResponse,
    CommissionSettingsUpdate,
    SettingsCalculateRequest,
)
from loyalty.services.commission import calculate_commission, fallback_commission
from loyalty.services.errors import NotFoundError
from loyalty.services.settings_store import get_active_settings_row, settings_to_snapshot
from loyalty.services.snapshots import SaleContext
from loyalty.utils.audit import get_client_ip, log_action, snapshot_fields

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/commission-settings")

SETTINGS_AUDIT_FIELDS = (
    "base_commission_rate",
    "cashback_rate",
    "tier_multipliers",
    "commission_cap",
    "minimum_active_users",
    "payout_threshold",
    "payout_frequency",
)


def _to_response(row: CommissionSettings) -> CommissionSettingsResponse:
    response = CommissionSettingsResponse.model_validate(row)
    response.effective_commission_cap = (
        row.commission_cap
        if row.commission_cap is not None
        else app_settings.default_commission_cap
    )
    return response


@router.get("", response_model=CommissionSettingsResponse)
async def get_current_settings(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    """Get the active settings version."""
    return _to_response(await get_active_settings_row(db))


@router.put("")
async def update_settings(
    request: Request,
    data: CommissionSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """
    Save a new settings version.

    The current version is deactivated and kept as history; sales computed
    with it keep pointing at it.
    """
    try:
        current = await get_active_settings_row(db)
    except NotFoundError:
        current = None
    before = snapshot_fields(current, SETTINGS_AUDIT_FIELDS)

    await db.execute(
        update(CommissionSettings)
        .where(CommissionSettings.is_active == True)
        .values(is_active=False)
    )

    new_settings = CommissionSettings(
        base_commission_rate=data.base_commission_rate,
        cashback_rate=data.cashback_rate,
        tier_multipliers=data.tier_multipliers.model_dump(),
        commission_cap=data.commission_cap,
        minimum_active_users=data.minimum_active_users,
        payout_threshold=data.payout_threshold,
        payout_frequency=data.payout_frequency,
        is_active=True,
        created_by_id=current_user.id,
    )
    db.add(new_settings)
    await db.flush()

    await log_action(
        db=db,
        user_id=current_user.id,
        action=AuditAction.UPDATE_SETTINGS,
        target_type="settings",
        target_id=new_settings.id,
        action_metadata={
            "before": before,
            "after": snapshot_fields(new_settings, SETTINGS_AUDIT_FIELDS),
            "previous_settings_id": current.id if current else None,
        },
        ip_address=get_client_ip(request),
    )

    await db.commit()
    await db.refresh(new_settings)

    logger.info(
        f"Commission settings #{new_settings.id} saved by {current_user.username}"
        f" (replacing #{current.id if current else None})"
    )

    return {"success": True, "settings": _to_response(new_settings)}


@router.get("/history", response_model=CommissionSettingsListResponse)
async def settings_history(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_staff),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
):
    """All settings versions, newest first."""
    total = await db.scalar(select(func.count()).select_from(CommissionSettings))

    result = await db.execute(
        select(CommissionSettings)
        .order_by(CommissionSettings.created_at.desc(), CommissionSettings.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    rows = result.scalars().all()

    return CommissionSettingsListResponse(
        items=[_to_response(row) for row in rows],
        total=total or 0,
        page=page,
        per_page=per_page,
        pages=(total + per_page - 1) // per_page if total else 0,
    )


@router.post("/calculate")
async def calculate_with_settings(
    data: SettingsCalculateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    """Test calculation on the settings fallback path, ignoring rules."""
    snapshot = settings_to_snapshot(await get_active_settings_row(db))

    context = SaleContext(
        total_amount=data.sales_amount,
        liters=0,
        user_tier=data.tier,
    )
    commission_amount, commission_rate = calculate_commission(context, snapshot)
    raw_amount = fallback_commission(data.sales_amount, data.tier, snapshot)

    return {
        "success": True,
        "tier": data.tier.value,
        "sales_amount": data.sales_amount,
        "base_rate": snapshot.base_commission_rate,
        "tier_multiplier": snapshot.tier_multiplier(data.tier),
        "commission_cap": snapshot.commission_cap,
        "commission_amount": commission_amount,
        "commission_rate": commission_rate,
        "capped": raw_amount > snapshot.commission_cap,
    }
