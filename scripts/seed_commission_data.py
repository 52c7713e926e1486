"""
Seed commission test data.

Usage:
    python scripts/seed_commission_data.py

Or with custom DATABASE_URL:
    DATABASE_URL="postgresql://..." python scripts/seed_commission_data.py

This script creates:
- Test manager user (if not exists)
- Default commission settings (if none are active)
- Example commission rules
- Customers in every tier with sales evaluated against the rules
"""

import argparse
import asyncio
import os
import sys
from decimal import Decimal

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db import AsyncSessionLocal, engine
from loyalty.models import (
    DEFAULT_TIER_MULTIPLIERS,
    CommissionRule,
    CommissionSettings,
    RuleType,
    Sale,
    Tier,
    User,
    UserRole,
)
from loyalty.services.commission import evaluate_sale
from loyalty.services.recalculation import apply_result
from loyalty.services.settings_store import load_commission_snapshot
from loyalty.services.snapshots import SaleContext
from loyalty.utils.password import hash_password


# ===== TEST DATA =====

TEST_RULES = [
    {
        "name": "Platinum bonus",
        "description": "Flat 8% for platinum sellers",
        "rate": Decimal("8.00"),
        "rule_type": RuleType.PERCENTAGE,
        "priority": 50,
        "conditions": {"tier_restrictions": ["platinum"]},
    },
    {
        "name": "Volume seller",
        "description": "Fixed 25.00 once a seller has 10 sales",
        "rate": Decimal("25.00"),
        "rule_type": RuleType.FIXED,
        "priority": 30,
        "conditions": {"minimum_sales": 10},
    },
    {
        "name": "Gold and silver boost",
        "description": "6% for gold and silver sellers",
        "rate": Decimal("6.00"),
        "rule_type": RuleType.PERCENTAGE,
        "priority": 10,
        "conditions": {"tier_restrictions": ["gold", "silver"]},
    },
]

TEST_CUSTOMERS = [
    ("customer_lead", "Lead Customer", Tier.LEAD),
    ("customer_silver", "Silver Customer", Tier.SILVER),
    ("customer_gold", "Gold Customer", Tier.GOLD),
    ("customer_platinum", "Platinum Customer", Tier.PLATINUM),
]


async def create_test_manager(db: AsyncSession) -> User:
    """Create a test manager user."""
    result = await db.execute(
        select(User).where(User.username == "test_manager")
    )
    manager = result.scalar_one_or_none()

    if not manager:
        manager = User(
            username="test_manager",
            password_hash=hash_password("test123"),
            role=UserRole.MANAGER,
            display_name="Test Manager",
            is_active=True,
        )
        db.add(manager)
        await db.commit()
        await db.refresh(manager)
        print("Created test manager: test_manager / test123")
    else:
        print(f"Test manager already exists (id={manager.id})")

    return manager


async def ensure_settings(db: AsyncSession) -> None:
    """Create default settings when no version is active."""
    result = await db.execute(
        select(CommissionSettings.id).where(CommissionSettings.is_active == True)
    )
    if result.scalars().first() is not None:
        print("Active commission settings found")
        return

    db.add(CommissionSettings(
        base_commission_rate=Decimal("5.00"),
        cashback_rate=Decimal("2.0"),
        tier_multipliers=dict(DEFAULT_TIER_MULTIPLIERS),
        is_active=True,
    ))
    await db.commit()
    print("Created default commission settings")


async def create_rules(db: AsyncSession, created_by_id: int) -> None:
    """Create the example rules that do not exist yet."""
    for data in TEST_RULES:
        result = await db.execute(
            select(CommissionRule).where(CommissionRule.name == data["name"])
        )
        if result.scalar_one_or_none():
            continue

        db.add(CommissionRule(
            **data,
            is_active=True,
            created_by_id=created_by_id,
            updated_by_id=created_by_id,
        ))
        print(f"Created rule: {data['name']} (priority {data['priority']})")

    await db.commit()


async def create_customers_with_sales(db: AsyncSession, sales_per_customer: int) -> int:
    """Create customers and evaluate a few sales for each."""
    snapshot = await load_commission_snapshot(db)
    created = 0

    for username, display_name, tier in TEST_CUSTOMERS:
        result = await db.execute(select(User).where(User.username == username))
        customer = result.scalar_one_or_none()
        if not customer:
            customer = User(
                username=username,
                role=UserRole.CUSTOMER,
                display_name=display_name,
                loyalty_tier=tier,
                is_active=True,
            )
            db.add(customer)
            await db.flush()
            print(f"Created customer: {username} ({tier.value})")

        for n in range(1, sales_per_customer + 1):
            sale_number = f"SEED-{username.upper()}-{n:03d}"
            existing = await db.execute(select(Sale.id).where(Sale.sale_number == sale_number))
            if existing.scalar_one_or_none():
                continue

            total_amount = Decimal(100 * n)
            liters = Decimal(10 * n)
            context = SaleContext(
                total_amount=total_amount,
                liters=liters,
                user_tier=tier,
                sales_count=n,
                as_of=snapshot.loaded_at,
            )
            sale = Sale(
                sale_number=sale_number,
                user_id=customer.id,
                total_amount=total_amount,
                liters_sold=liters,
            )
            apply_result(sale, evaluate_sale(context, snapshot.settings, snapshot.rules))
            db.add(sale)
            created += 1

    await db.commit()
    return created


async def seed_all(sales_per_customer: int):
    """Seed all test data."""
    print("\nConnecting to database...")

    async with AsyncSessionLocal() as db:
        print("\n=== Creating test data ===\n")

        manager = await create_test_manager(db)
        await ensure_settings(db)
        await create_rules(db, created_by_id=manager.id)
        created = await create_customers_with_sales(db, sales_per_customer)

        print("\n" + "=" * 50)
        print("TEST DATA CREATED SUCCESSFULLY!")
        print("=" * 50)
        print(f"""
Sales created: {created}

Test login:
  - Manager: test_manager / test123
        """)

    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed commission test data")
    parser.add_argument("--sales", type=int, default=12, help="Sales per customer")

    args = parser.parse_args()

    asyncio.run(seed_all(sales_per_customer=args.sales))
