"""Admin sales and commission recalculation API endpoints."""

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.auth.dependencies import require_admin, require_staff
from loyalty.db import get_db, get_session_factory
from loyalty.models import AuditAction, Sale, User, UserRole
from loyalty.schemas.sale import (
    CommissionSummaryResponse,
    RecalculateRequest,
    RecalculationSummaryResponse,
    SaleCreate,
    SaleListResponse,
    SaleResponse,
    TierCommissionTotals,
)
from loyalty.services.commission import evaluate_sale
from loyalty.services.errors import NotFoundError, ValidationError
from loyalty.services.recalculation import apply_result, get_running_job, run_recalculation
from loyalty.services.settings_store import load_commission_snapshot
from loyalty.services.snapshots import SaleContext
from loyalty.utils.audit import get_client_ip, log_action

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sales")

ZERO = Decimal("0.00")


@router.get("/list", response_model=SaleListResponse)
async def list_sales(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_staff),
    user_id: Optional[int] = Query(None),
    calculated_only: bool = Query(False),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
):
    """List sales, newest first."""
    query = select(Sale)

    if user_id:
        query = query.where(Sale.user_id == user_id)

    if calculated_only:
        query = query.where(Sale.commission_calculated == True)

    count_query = select(func.count()).select_from(query.subquery())
    total = await db.scalar(count_query)

    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    query = query.offset((page - 1) * per_page).limit(per_page)

    result = await db.execute(query)
    sales = result.scalars().all()

    return SaleListResponse(
        items=[SaleResponse.model_validate(sale) for sale in sales],
        total=total or 0,
        page=page,
        per_page=per_page,
        pages=(total + per_page - 1) // per_page if total else 0,
    )


@router.post("", status_code=201)
async def create_sale(
    request: Request,
    data: SaleCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """
    Record a sale and evaluate its commission and cashback.

    The result is computed against the current settings and rules and
    stored on the sale together with the settings version used.
    """
    existing = await db.execute(
        select(Sale.id).where(Sale.sale_number == data.sale_number)
    )
    if existing.scalar_one_or_none():
        raise ValidationError(f"Sale number '{data.sale_number}' already exists")

    customer = await db.get(User, data.user_id)
    if not customer or customer.role != UserRole.CUSTOMER:
        raise NotFoundError(f"Customer {data.user_id} not found")

    previous_sales = await db.scalar(
        select(func.count()).select_from(Sale).where(Sale.user_id == customer.id)
    )

    snapshot = await load_commission_snapshot(db)
    context = SaleContext(
        total_amount=data.total_amount,
        liters=data.liters_sold,
        user_tier=customer.loyalty_tier,
        sales_count=(previous_sales or 0) + 1,
        network_size=data.network_size,
        growth_rate=data.growth_rate,
        as_of=snapshot.loaded_at,
    )
    result = evaluate_sale(context, snapshot.settings, snapshot.rules)

    sale = Sale(
        sale_number=data.sale_number,
        user_id=customer.id,
        total_amount=data.total_amount,
        liters_sold=data.liters_sold,
        network_size=data.network_size,
        growth_rate=data.growth_rate,
    )
    apply_result(sale, result)
    db.add(sale)
    await db.flush()

    await log_action(
        db=db,
        user_id=current_user.id,
        action=AuditAction.CREATE_SALE,
        target_type="sale",
        target_id=sale.id,
        action_metadata={
            "sale_number": sale.sale_number,
            "commission_amount": float(result.commission_amount),
            "cashback_amount": float(result.cashback_amount),
            "rule_used": result.rule_used,
        },
        ip_address=get_client_ip(request),
    )

    await db.commit()
    await db.refresh(sale)

    logger.info(
        f"Sale {sale.sale_number} recorded: commission {result.commission_amount} "
        f"({result.commission_rate}%), cashback {result.cashback_amount}, rule={result.rule_used}"
    )

    return {"success": True, "sale": SaleResponse.model_validate(sale)}


@router.get("/commission-summary", response_model=CommissionSummaryResponse)
async def commission_summary(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    """Commission and cashback totals by tier over calculated sales."""
    result = await db.execute(
        select(
            Sale.commission_tier,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_amount), 0),
            func.coalesce(func.sum(Sale.commission_amount), 0),
            func.coalesce(func.sum(Sale.cashback_earned), 0),
        )
        .where(Sale.commission_calculated == True)
        .group_by(Sale.commission_tier)
        .order_by(Sale.commission_tier)
    )

    by_tier = [
        TierCommissionTotals(
            tier=tier or "unknown",
            sales_count=count,
            total_amount=Decimal(str(total_amount)),
            commission_amount=Decimal(str(commission_amount)),
            cashback_earned=Decimal(str(cashback_earned)),
        )
        for tier, count, total_amount, commission_amount, cashback_earned in result.all()
    ]

    return CommissionSummaryResponse(
        sales_count=sum(row.sales_count for row in by_tier),
        total_amount=sum((row.total_amount for row in by_tier), ZERO),
        commission_amount=sum((row.commission_amount for row in by_tier), ZERO),
        cashback_earned=sum((row.cashback_earned for row in by_tier), ZERO),
        by_tier=by_tier,
    )


@router.post("/recalculate")
async def recalculate_commissions(
    request: Request,
    data: Optional[RecalculateRequest] = Body(None),
    session_factory=Depends(get_session_factory),
    current_user: User = Depends(require_admin),
):
    """
    Recalculate the commission of every sale carrying commission data
    against the current settings and rules.

    Blocks until the run finishes and returns its summary.
    """
    if get_running_job() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A commission recalculation is already running",
        )

    logger.info(f"Commission recalculation started by {current_user.username}")

    try:
        summary = await run_recalculation(
            session_factory,
            actor_id=current_user.id,
            ip_address=get_client_ip(request),
            max_workers=data.max_workers if data else None,
        )
    except RuntimeError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return {
        "success": True,
        "summary": RecalculationSummaryResponse(**summary.as_dict()),
    }


@router.post("/recalculate/cancel")
async def cancel_recalculation(
    current_user: User = Depends(require_admin),
):
    """Ask the running recalculation to stop after the sales in progress."""
    job = get_running_job()
    if job is None:
        raise NotFoundError("No commission recalculation is running")

    job.cancel()
    logger.info(f"Commission recalculation cancelled by {current_user.username}")

    return {"success": True, "message": "Cancellation requested"}
