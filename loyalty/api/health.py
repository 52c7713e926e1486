"""
Health check endpoints.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db import get_db
from loyalty.models import CommissionSettings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check():
    """Returns 200 if the service is running."""
    return {"status": "healthy", "service": "loyalty-admin"}


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """
    Readiness check.

    The service is ready when the database answers and an active settings
    version exists; without one every commission evaluation fails.
    """
    try:
        await db.execute(text("SELECT 1"))
        active_settings = await db.scalar(
            select(func.count())
            .select_from(CommissionSettings)
            .where(CommissionSettings.is_active == True)
        )
    except SQLAlchemyError as e:
        logger.error(f"Readiness check failed: {e}")
        return {
            "status": "not_ready",
            "database": f"error: {e}",
        }

    return {
        "status": "ready" if active_settings else "not_ready",
        "database": "connected",
        "commission_settings": "active" if active_settings else "missing",
    }


@router.get("/live")
async def liveness_check():
    """Liveness check used by the container platform to decide on restarts."""
    return {"status": "alive"}
