"""
Loyalty Admin - commission rules and settings backend

Main FastAPI application with:
- Role-based authentication (admin/manager)
- Commission rule and settings management
- Commission evaluation for sales and batch recalculation
"""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import select
from starlette.exceptions import HTTPException as StarletteHTTPException

from loyalty.api import api_router
from loyalty.auth.middleware import AuthMiddleware
from loyalty.config import settings
from loyalty.db import get_db_context
from loyalty.models import DEFAULT_TIER_MULTIPLIERS, CommissionSettings, User, UserRole
from loyalty.scheduler.jobs import scheduler, setup_scheduler
from loyalty.services.errors import CommissionError
from loyalty.utils.password import hash_password

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def seed_defaults() -> None:
    """Create the admin account and the default settings version if missing."""
    async with get_db_context() as db:
        result = await db.execute(
            select(User).where(User.role == UserRole.ADMIN).limit(1)
        )
        admin = result.scalar_one_or_none()

        if not admin:
            logger.info("Creating admin account...")
            db.add(User(
                username=settings.admin_username,
                password_hash=hash_password(settings.admin_password),
                role=UserRole.ADMIN,
                display_name="Administrator",
                is_active=True,
            ))
            logger.info(f"Admin account created: {settings.admin_username}")

        result = await db.execute(
            select(CommissionSettings.id)
            .where(CommissionSettings.is_active == True)
            .limit(1)
        )
        if result.scalar_one_or_none() is None:
            db.add(CommissionSettings(
                base_commission_rate=Decimal("5.00"),
                cashback_rate=Decimal("2.0"),
                tier_multipliers=dict(DEFAULT_TIER_MULTIPLIERS),
                commission_cap=None,
                is_active=True,
            ))
            logger.info("Created default commission settings")

        await db.commit()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
    - Creates admin account and default commission settings if missing
    - Starts the scheduler when a job is enabled

    Shutdown:
    - Stops the scheduler
    """
    logger.info("Starting Loyalty Admin...")

    await seed_defaults()

    if setup_scheduler():
        scheduler.start()

    logger.info("Loyalty Admin started successfully!")

    yield

    logger.info("Shutting down Loyalty Admin...")
    if scheduler.running:
        scheduler.shutdown(wait=False)


# Create FastAPI application
app = FastAPI(
    title="Loyalty Admin",
    description="Commission rules, settings and calculation",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# Add authentication middleware
app.add_middleware(AuthMiddleware)

# Include routers
app.include_router(api_router)  # /api/* endpoints


def _error_response(status_code: int, code: str, message) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"code": code, "message": message}},
    )


@app.exception_handler(CommissionError)
async def commission_error_handler(request: Request, exc: CommissionError):
    """Engine and lookup errors."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and query parameters."""
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in errors
    )
    return _error_response(400, "validation_error", message or "Invalid request")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Auth failures, conflicts and unknown routes."""
    codes = {
        401: "not_authenticated",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
    }
    return _error_response(
        exc.status_code,
        codes.get(exc.status_code, "http_error"),
        exc.detail,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "loyalty.main:app",
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production,
    )
