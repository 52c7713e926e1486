"""
Tests for the commission recalculation job.

Covers:
- Summary counts and skipped sales
- Per-sale failures isolated from the rest of the batch
- Snapshot load failure aborts before any write
- Bounded concurrency and per-sale write serialization
- Cancellation and a failing audit sink
- SqlSaleStore against a SQLite database
"""

import asyncio
from decimal import Decimal
from typing import Dict, List

import pytest
from sqlalchemy import select

from loyalty.models import AuditAction, AuditLog, CommissionRule, RuleType, Sale, Tier, User, UserRole
from loyalty.services.errors import NotFoundError, PersistenceError
from loyalty.services.recalculation import (
    ItemOutcome,
    ItemResult,
    RecalculationJob,
    RecalculationSummary,
    SaleLockRegistry,
    SaleRecord,
    SaleStore,
    SqlSaleStore,
    get_running_job,
    run_recalculation,
)
from loyalty.services.snapshots import CommissionSnapshot, SettingsSnapshot


def _snapshot(cap="1000"):
    return CommissionSnapshot(
        settings=SettingsSnapshot(
            base_commission_rate=Decimal("5"),
            cashback_rate=Decimal("0.5"),
            commission_cap=Decimal(cap),
            tier_multipliers={"lead": Decimal("1.0"), "gold": Decimal("1.5")},
            settings_id=1,
        ),
    )


def _record(sale_id, total="1000", liters="50", tier=Tier.GOLD, user_id=1):
    return SaleRecord(
        sale_id=sale_id,
        sale_number=f"S-{sale_id:03d}",
        total_amount=Decimal(total),
        liters=Decimal(liters) if liters is not None else None,
        user_id=user_id,
        user_tier=tier,
        previous_amount=Decimal("10.00"),
        previous_rate=Decimal("1.00"),
    )


class FakeStore(SaleStore):
    """In-memory SaleStore recording writes."""

    def __init__(self, records, fail_ids=(), write_delay=0.0):
        self.records = list(records)
        self.fail_ids = set(fail_ids)
        self.write_delay = write_delay
        self.writes: Dict[int, List] = {}
        self.active_writes = 0
        self.max_active_writes = 0

    async def list_sales(self):
        return list(self.records)

    async def write_result(self, record, result, snapshot):
        self.active_writes += 1
        self.max_active_writes = max(self.max_active_writes, self.active_writes)
        try:
            await asyncio.sleep(self.write_delay)
            if record.sale_id in self.fail_ids:
                raise PersistenceError(f"write failed for {record.sale_number}")
            self.writes.setdefault(record.sale_id, []).append(result)
        finally:
            self.active_writes -= 1


def _loader(snapshot=None):
    async def load():
        return snapshot or _snapshot()

    return load


# ── Summary ──────────────────────────────────────────────


class TestSummary:
    def test_fold_counts_outcomes(self):
        items = [
            ItemResult(1, "S-1", ItemOutcome.SKIPPED, reason="missing user"),
            ItemResult(2, "S-2", ItemOutcome.ERRORED, reason="boom"),
            ItemResult(3, "S-3", ItemOutcome.SKIPPED, reason="missing liters"),
        ]
        summary = RecalculationSummary.from_results(items, total=5)

        assert summary.skipped == 2
        assert summary.errored == 1
        assert summary.updated == 0
        assert summary.processed == 3
        assert summary.errors == [{"sale_number": "S-2", "error": "boom"}]

    def test_as_dict_is_json_ready(self):
        summary = RecalculationSummary(total=1, updated=1)
        data = summary.as_dict()
        assert data["total"] == 1
        assert data["started_at"] is None
        assert data["changes"] == []


# ── RecalculationJob ─────────────────────────────────────


class TestRecalculationJob:
    @pytest.mark.asyncio
    async def test_updates_every_sale(self):
        store = FakeStore([_record(i) for i in range(1, 6)])
        summary = await RecalculationJob(store, _loader(), max_workers=2).run()

        assert summary.total == 5
        assert summary.updated == 5
        assert summary.errored == 0
        assert summary.not_processed == 0
        assert summary.settings_id == 1
        assert summary.finished_at >= summary.started_at
        for results in store.writes.values():
            assert results[0].commission_amount == Decimal("75.00")
            assert results[0].cashback_amount == Decimal("37.50")

    @pytest.mark.asyncio
    async def test_skips_sales_without_user_or_liters(self):
        store = FakeStore([
            _record(1),
            _record(2, user_id=None, tier=None),
            _record(3, liters=None),
        ])
        summary = await RecalculationJob(store, _loader()).run()

        assert summary.updated == 1
        assert summary.skipped == 2
        assert set(store.writes) == {1}

    @pytest.mark.asyncio
    async def test_missing_tier_defaults_to_lead(self):
        store = FakeStore([_record(1, tier=None)])
        await RecalculationJob(store, _loader()).run()

        result = store.writes[1][0]
        assert result.tier == Tier.LEAD
        assert result.commission_amount == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_failing_sales_do_not_stop_the_batch(self):
        store = FakeStore(
            [_record(1), _record(2, total="-5"), _record(3), _record(4)],
            fail_ids={3},
        )
        summary = await RecalculationJob(store, _loader(), max_workers=3).run()

        assert summary.updated == 2
        assert summary.errored == 2
        assert {e["sale_number"] for e in summary.errors} == {"S-002", "S-003"}
        assert set(store.writes) == {1, 4}

    @pytest.mark.asyncio
    async def test_snapshot_failure_aborts_before_writes(self):
        async def broken_loader():
            raise NotFoundError("Commission settings not found")

        store = FakeStore([_record(1)])
        with pytest.raises(NotFoundError):
            await RecalculationJob(store, broken_loader).run()

        assert store.writes == {}

    @pytest.mark.asyncio
    async def test_worker_pool_is_bounded(self):
        store = FakeStore([_record(i) for i in range(1, 13)], write_delay=0.01)
        summary = await RecalculationJob(store, _loader(), max_workers=3).run()

        assert summary.updated == 12
        assert 1 < store.max_active_writes <= 3

    @pytest.mark.asyncio
    async def test_writes_for_one_sale_are_serialized(self):
        locks = SaleLockRegistry()
        store = FakeStore([_record(1), _record(1), _record(1)], write_delay=0.01)
        summary = await RecalculationJob(store, _loader(), max_workers=3, locks=locks).run()

        assert summary.updated == 3
        assert store.max_active_writes == 1
        assert len(store.writes[1]) == 3

    @pytest.mark.asyncio
    async def test_cancel_leaves_rest_unprocessed(self):
        store = FakeStore([_record(i) for i in range(1, 21)], write_delay=0.01)
        job = RecalculationJob(store, _loader(), max_workers=2)

        async def cancel_soon():
            while not store.writes:
                await asyncio.sleep(0.001)
            job.cancel()

        summary, _ = await asyncio.gather(job.run(), cancel_soon())

        assert summary.cancelled
        assert summary.not_processed > 0
        assert summary.processed + summary.not_processed == 20
        assert len(store.writes) == summary.updated

    @pytest.mark.asyncio
    async def test_audit_sink_receives_summary(self):
        received = []

        async def sink(summary):
            received.append(summary)

        store = FakeStore([_record(1)])
        summary = await RecalculationJob(store, _loader(), audit=sink).run()

        assert received == [summary]

    @pytest.mark.asyncio
    async def test_failing_audit_sink_is_ignored(self):
        async def sink(summary):
            raise RuntimeError("audit store down")

        store = FakeStore([_record(1)])
        summary = await RecalculationJob(store, _loader(), audit=sink).run()

        assert summary.updated == 1

    @pytest.mark.asyncio
    async def test_same_snapshot_is_idempotent(self):
        store = FakeStore([_record(1), _record(2)])
        job_snapshot = _snapshot()

        await RecalculationJob(store, _loader(job_snapshot)).run()
        await RecalculationJob(store, _loader(job_snapshot)).run()

        for results in store.writes.values():
            assert results[0] == results[1]

    def test_max_workers_must_be_positive(self):
        with pytest.raises(ValueError):
            RecalculationJob(FakeStore([]), _loader(), max_workers=-1)

    def test_zero_workers_is_rejected(self):
        with pytest.raises(ValueError):
            RecalculationJob(FakeStore([]), _loader(), max_workers=0)


# ── Database-backed run ──────────────────────────────────


async def _seed_sales(db_session):
    gold = User(username="gold", role=UserRole.CUSTOMER, display_name="Gold", loyalty_tier=Tier.GOLD)
    lead = User(username="lead", role=UserRole.CUSTOMER, display_name="Lead", loyalty_tier=Tier.LEAD)
    db_session.add_all([gold, lead])
    await db_session.flush()

    db_session.add_all([
        Sale(
            sale_number="DB-1",
            user_id=gold.id,
            total_amount=Decimal("1000"),
            liters_sold=Decimal("50"),
            commission_amount=Decimal("1.00"),
            commission_calculated=True,
        ),
        Sale(
            sale_number="DB-2",
            user_id=lead.id,
            total_amount=Decimal("200"),
            liters_sold=None,
            network_size=12,
            growth_rate=Decimal("4.50"),
            commission_amount=Decimal("3.00"),
            commission_calculated=True,
        ),
        Sale(
            sale_number="DB-3",
            user_id=lead.id,
            total_amount=Decimal("500"),
            liters_sold=Decimal("10"),
            commission_calculated=False,
        ),
    ])
    await db_session.commit()


class TestSqlRecalculation:
    @pytest.mark.asyncio
    async def test_list_sales_only_with_commission_data(self, db_session, session_factory, active_settings):
        await _seed_sales(db_session)

        records = await SqlSaleStore(session_factory).list_sales()

        assert [r.sale_number for r in records] == ["DB-1", "DB-2"]
        assert records[0].user_tier == Tier.GOLD
        # DB-3 comes later and does not count towards DB-2
        assert records[1].sales_count == 1
        assert records[1].network_size == 12
        assert Decimal(str(records[1].growth_rate)) == Decimal("4.50")

    @pytest.mark.asyncio
    async def test_run_updates_rows_and_writes_audit(self, db_session, session_factory, active_settings):
        await _seed_sales(db_session)
        db_session.add(CommissionRule(
            name="Gold 10%",
            description="Ten percent for gold",
            rate=Decimal("10"),
            rule_type=RuleType.PERCENTAGE,
            priority=10,
            conditions={"tier_restrictions": ["gold"]},
            is_active=True,
        ))
        await db_session.commit()

        summary = await run_recalculation(session_factory, max_workers=2)

        assert summary.total == 2
        assert summary.updated == 1
        assert summary.skipped == 1
        assert get_running_job() is None

        async with session_factory() as db:
            sale = (await db.execute(select(Sale).where(Sale.sale_number == "DB-1"))).scalar_one()
            assert sale.commission_amount == Decimal("100.00")
            assert sale.commission_rate == Decimal("10.00")
            assert sale.cashback_earned == Decimal("37.50")
            assert sale.commission_tier == "gold"
            assert sale.commission_settings_id == active_settings.id
            assert sale.commission_settings_snapshot["settings_id"] == active_settings.id
            assert sale.commission_recalculated_at is not None

            untouched = (await db.execute(select(Sale).where(Sale.sale_number == "DB-3"))).scalar_one()
            assert untouched.commission_calculated is False
            assert untouched.commission_recalculated_at is None

            logs = (await db.execute(select(AuditLog))).scalars().all()
            assert len(logs) == 1
            assert logs[0].action == AuditAction.RECALCULATE_COMMISSIONS
            assert logs[0].user_id is None
            assert logs[0].action_metadata["updated"] == 1

    @pytest.mark.asyncio
    async def test_run_without_settings_fails(self, session_factory):
        with pytest.raises(NotFoundError):
            await run_recalculation(session_factory)
        assert get_running_job() is None
