"""Admin customer API endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.auth.dependencies import require_admin, require_staff
from loyalty.db import get_db
from loyalty.models import AuditAction, Sale, Tier, User, UserRole
from loyalty.schemas.user import (
    CustomerCreate,
    CustomerListResponse,
    CustomerResponse,
    CustomerUpdate,
)
from loyalty.services.errors import NotFoundError, ValidationError
from loyalty.utils.audit import get_client_ip, log_action, snapshot_fields

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers")

CUSTOMER_AUDIT_FIELDS = ("display_name", "loyalty_tier", "is_active")


async def _get_customer(db: AsyncSession, customer_id: int) -> User:
    customer = await db.get(User, customer_id)
    if not customer or customer.role != UserRole.CUSTOMER:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


async def _sales_count(db: AsyncSession, customer_id: int) -> int:
    count = await db.scalar(
        select(func.count()).select_from(Sale).where(Sale.user_id == customer_id)
    )
    return count or 0


def _to_response(customer: User, sales_count: int = 0) -> CustomerResponse:
    response = CustomerResponse.model_validate(customer)
    response.sales_count = sales_count
    return response


@router.get("", response_model=CustomerListResponse)
async def list_customers(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_staff),
    tier: Optional[Tier] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
):
    """List customers with their sales counts."""
    sales_per_user = (
        select(Sale.user_id, func.count(Sale.id).label("sales_count"))
        .group_by(Sale.user_id)
        .subquery()
    )

    query = (
        select(User, func.coalesce(sales_per_user.c.sales_count, 0))
        .outerjoin(sales_per_user, sales_per_user.c.user_id == User.id)
        .where(User.role == UserRole.CUSTOMER)
    )

    if tier:
        query = query.where(User.loyalty_tier == tier)

    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(User.username.ilike(pattern), User.display_name.ilike(pattern))
        )

    count_query = select(func.count()).select_from(query.subquery())
    total = await db.scalar(count_query)

    query = query.order_by(User.created_at.desc(), User.id.desc())
    query = query.offset((page - 1) * per_page).limit(per_page)

    result = await db.execute(query)

    return CustomerListResponse(
        items=[_to_response(customer, sales_count) for customer, sales_count in result.all()],
        total=total or 0,
        page=page,
        per_page=per_page,
        pages=(total + per_page - 1) // per_page if total else 0,
    )


@router.post("", status_code=201)
async def create_customer(
    request: Request,
    data: CustomerCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Register a customer."""
    existing = await db.execute(
        select(User).where(User.username == data.username)
    )
    if existing.scalar_one_or_none():
        raise ValidationError(f"Username '{data.username}' already exists")

    customer = User(
        username=data.username,
        password_hash=None,
        role=UserRole.CUSTOMER,
        display_name=data.display_name,
        loyalty_tier=data.loyalty_tier,
        is_active=True,
    )
    db.add(customer)
    await db.flush()

    await log_action(
        db=db,
        user_id=current_user.id,
        action=AuditAction.CREATE_CUSTOMER,
        target_type="customer",
        target_id=customer.id,
        action_metadata={
            "before": None,
            "after": snapshot_fields(customer, CUSTOMER_AUDIT_FIELDS),
        },
        ip_address=get_client_ip(request),
    )

    await db.commit()
    await db.refresh(customer)

    logger.info(f"Customer {customer.username} created with tier {customer.loyalty_tier.value}")

    return {"success": True, "customer": _to_response(customer)}


@router.patch("/{customer_id}")
async def update_customer(
    request: Request,
    customer_id: int,
    data: CustomerUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """
    Update a customer.

    A tier change affects commission and cashback of future sales and of
    the next recalculation run.
    """
    customer = await _get_customer(db, customer_id)
    before = snapshot_fields(customer, CUSTOMER_AUDIT_FIELDS)

    for field, value in data.model_dump(exclude_none=True).items():
        setattr(customer, field, value)

    await log_action(
        db=db,
        user_id=current_user.id,
        action=AuditAction.UPDATE_CUSTOMER,
        target_type="customer",
        target_id=customer.id,
        action_metadata={
            "before": before,
            "after": snapshot_fields(customer, CUSTOMER_AUDIT_FIELDS),
        },
        ip_address=get_client_ip(request),
    )

    await db.commit()
    await db.refresh(customer)

    return {
        "success": True,
        "customer": _to_response(customer, await _sales_count(db, customer.id)),
    }
