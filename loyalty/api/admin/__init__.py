"""Admin API router aggregation."""

from fastapi import APIRouter

from loyalty.api.admin.audit import router as audit_router
from loyalty.api.admin.commission_rules import router as commission_rules_router
from loyalty.api.admin.commission_settings import router as commission_settings_router
from loyalty.api.admin.customers import router as customers_router
from loyalty.api.admin.sales import router as sales_router

admin_router = APIRouter(prefix="/admin", tags=["Admin"])

admin_router.include_router(commission_rules_router)
admin_router.include_router(commission_settings_router)
admin_router.include_router(sales_router)
admin_router.include_router(customers_router)
admin_router.include_router(audit_router)

__all__ = ["admin_router"]
