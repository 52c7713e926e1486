"""API router aggregation."""

from fastapi import APIRouter

from loyalty.api.admin import admin_router
from loyalty.api.auth import router as auth_router
from loyalty.api.health import router as health_router

# Main API router (for /api/* endpoints)
api_router = APIRouter(prefix="/api")

api_router.include_router(health_router)
api_router.include_router(auth_router)
api_router.include_router(admin_router)

__all__ = ["api_router"]
