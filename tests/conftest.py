"""
Pytest configuration and fixtures.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from decimal import Decimal

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from loyalty.auth.jwt import COOKIE_NAME, create_access_token
from loyalty.db import build_engine
from loyalty.models import DEFAULT_TIER_MULTIPLIERS, Base, CommissionSettings, User, UserRole
from loyalty.utils.password import hash_password


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """
    Create test database engine.

    A file database so that separate sessions (API request, recalculation
    workers) see the same data.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def admin_user(db_session):
    user = User(
        username="admin",
        password_hash=hash_password("admin-pass"),
        role=UserRole.ADMIN,
        display_name="Administrator",
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def manager_user(db_session):
    user = User(
        username="manager",
        password_hash=hash_password("manager-pass"),
        role=UserRole.MANAGER,
        display_name="Manager",
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def active_settings(db_session):
    """Default settings version with an explicit cap of 1000."""
    row = CommissionSettings(
        base_commission_rate=Decimal("5.00"),
        cashback_rate=Decimal("0.5"),
        tier_multipliers=dict(DEFAULT_TIER_MULTIPLIERS),
        commission_cap=Decimal("1000.00"),
        is_active=True,
    )
    db_session.add(row)
    await db_session.commit()
    await db_session.refresh(row)
    return row


def _client(app, user=None) -> AsyncClient:
    cookies = {}
    if user is not None:
        cookies[COOKIE_NAME] = create_access_token(user.id, user.role.value)
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies=cookies,
    )


@pytest_asyncio.fixture
async def app(session_factory):
    """The application wired to the test database (lifespan not run)."""
    from loyalty.db import get_db, get_session_factory
    from loyalty.main import app as application

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_session_factory] = lambda: session_factory

    yield application

    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin_client(app, admin_user):
    async with _client(app, admin_user) as client:
        yield client


@pytest_asyncio.fixture
async def manager_client(app, manager_user):
    async with _client(app, manager_user) as client:
        yield client


@pytest_asyncio.fixture
async def anon_client(app):
    async with _client(app) as client:
        yield client
