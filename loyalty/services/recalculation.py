"""
Commission recalculation for historical sales.

A run loads one snapshot of the settings and active rules, then re-evaluates
every sale that already carries commission data with a fixed-size pool of
worker coroutines. Writes for the same sale id are serialized. A failing sale
is logged and counted and never stops the run; failing to load the snapshot
stops it before any sale is touched.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from functools import reduce
from typing import Awaitable, Callable, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased

from loyalty.config import settings as app_settings
from loyalty.models import AuditAction, Sale, Tier, User
from loyalty.services.commission import evaluate_sale
from loyalty.services.errors import PersistenceError
from loyalty.services.settings_store import load_commission_snapshot
from loyalty.services.snapshots import CommissionResult, CommissionSnapshot, SaleContext
from loyalty.utils.audit import log_action

logger = logging.getLogger(__name__)

# Cap on per-sale changes copied into the audit record of a run
MAX_AUDITED_CHANGES = 100


class ItemOutcome(str, Enum):
    """What happened to one sale during a run."""
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERRORED = "errored"


@dataclass(frozen=True)
class SaleRecord:
    """The stored data of one sale needed to re-evaluate it."""

    sale_id: int
    sale_number: str
    total_amount: Decimal
    liters: Optional[Decimal]
    user_id: Optional[int]
    user_tier: Optional[Tier]
    sales_count: Optional[int] = None
    network_size: Optional[int] = None
    growth_rate: Optional[Decimal] = None
    previous_amount: Optional[Decimal] = None
    previous_rate: Optional[Decimal] = None


@dataclass(frozen=True)
class ItemResult:
    sale_id: int
    sale_number: str
    outcome: ItemOutcome
    reason: Optional[str] = None
    result: Optional[CommissionResult] = None
    previous_amount: Optional[Decimal] = None


@dataclass
class RecalculationSummary:
    """End-of-run counts, built as a fold over the per-sale outcomes."""

    total: int = 0
    updated: int = 0
    skipped: int = 0
    errored: int = 0
    not_processed: int = 0
    cancelled: bool = False
    settings_id: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    errors: List[dict] = field(default_factory=list)
    changes: List[dict] = field(default_factory=list)

    def record(self, item: ItemResult) -> "RecalculationSummary":
        """Fold one outcome into the summary."""
        if item.outcome == ItemOutcome.UPDATED:
            self.updated += 1
            if len(self.changes) < MAX_AUDITED_CHANGES:
                self.changes.append({
                    "sale_number": item.sale_number,
                    "before": float(item.previous_amount) if item.previous_amount is not None else None,
                    "after": float(item.result.commission_amount),
                    "rule_used": item.result.rule_used,
                })
        elif item.outcome == ItemOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.errored += 1
            self.errors.append({"sale_number": item.sale_number, "error": item.reason})
        return self

    @classmethod
    def from_results(cls, results: List[ItemResult], **fields) -> "RecalculationSummary":
        return reduce(lambda summary, item: summary.record(item), results, cls(**fields))

    @property
    def processed(self) -> int:
        return self.updated + self.skipped + self.errored

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "updated": self.updated,
            "skipped": self.skipped,
            "errored": self.errored,
            "not_processed": self.not_processed,
            "cancelled": self.cancelled,
            "settings_id": self.settings_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "errors": list(self.errors),
            "changes": list(self.changes),
        }


class SaleLockRegistry:
    """
    One asyncio.Lock per sale id.

    Locks live only while someone holds or waits on them.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, sale_id: int) -> asyncio.Lock:
        lock = self._locks.get(sale_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[sale_id] = lock
        return lock


# Shared by every recalculation run in this process
sale_write_locks = SaleLockRegistry()


def apply_result(sale: Sale, result: CommissionResult) -> None:
    """Copy a CommissionResult onto a sale row."""
    sale.commission_amount = result.commission_amount
    sale.commission_rate = result.commission_rate
    sale.commission_calculated = True
    sale.commission_tier = result.tier.value
    sale.commission_rule_used = result.rule_used
    sale.commission_settings_id = result.settings_snapshot.get("settings_id")
    sale.commission_settings_snapshot = result.settings_snapshot
    sale.cashback_earned = result.cashback_amount


class SaleStore:
    """Read/write access to historical sales for a recalculation run."""

    async def list_sales(self) -> List[SaleRecord]:
        raise NotImplementedError

    async def write_result(
        self,
        record: SaleRecord,
        result: CommissionResult,
        snapshot: CommissionSnapshot,
    ) -> None:
        raise NotImplementedError


class SqlSaleStore(SaleStore):
    """
    SaleStore backed by the sales table.

    Every write opens its own session so workers never share one.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def list_sales(self) -> List[SaleRecord]:
        # Only the customer's sales up to this one, as counted at creation time
        earlier = aliased(Sale)
        sales_count = (
            select(func.count(earlier.id))
            .where(earlier.user_id == Sale.user_id, earlier.id <= Sale.id)
            .correlate(Sale)
            .scalar_subquery()
        )

        async with self._session_factory() as db:
            result = await db.execute(
                select(Sale, User.loyalty_tier, sales_count)
                .outerjoin(User, Sale.user_id == User.id)
                .where(
                    or_(
                        Sale.commission_calculated == True,
                        Sale.commission_amount > 0,
                    )
                )
                .order_by(Sale.id)
            )
            rows = result.all()

        return [
            SaleRecord(
                sale_id=sale.id,
                sale_number=sale.sale_number,
                total_amount=sale.total_amount,
                liters=sale.liters_sold,
                user_id=sale.user_id,
                user_tier=tier,
                sales_count=sales_count,
                network_size=sale.network_size,
                growth_rate=sale.growth_rate,
                previous_amount=sale.commission_amount,
                previous_rate=sale.commission_rate,
            )
            for sale, tier, sales_count in rows
        ]

    async def write_result(
        self,
        record: SaleRecord,
        result: CommissionResult,
        snapshot: CommissionSnapshot,
    ) -> None:
        try:
            async with self._session_factory() as db:
                sale = await db.get(Sale, record.sale_id)
                if sale is None:
                    raise PersistenceError(f"Sale {record.sale_number} no longer exists")

                apply_result(sale, result)
                sale.commission_recalculated_at = datetime.now(timezone.utc)
                await db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to write sale {record.sale_number}: {e}") from e


SnapshotLoader = Callable[[], Awaitable[CommissionSnapshot]]
AuditSink = Callable[[RecalculationSummary], Awaitable[None]]


class RecalculationJob:
    """
    Re-derives the commission of every sale that carries commission data.

    Usage:
        job = RecalculationJob(SqlSaleStore(AsyncSessionLocal), loader)
        summary = await job.run()

    cancel() may be called from another task; workers stop before picking
    up their next sale and the summary reports the rest as not processed.
    """

    def __init__(
        self,
        store: SaleStore,
        load_snapshot: SnapshotLoader,
        max_workers: Optional[int] = None,
        audit: Optional[AuditSink] = None,
        locks: Optional[SaleLockRegistry] = None,
    ):
        self._store = store
        self._load_snapshot = load_snapshot
        self._max_workers = app_settings.recalc_max_workers if max_workers is None else max_workers
        self._audit = audit
        self._locks = locks or sale_write_locks
        self._cancel_event = asyncio.Event()

        if self._max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    def cancel(self) -> None:
        """Ask the workers to stop after their current sale."""
        if not self._cancel_event.is_set():
            logger.info("Commission recalculation cancellation requested")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    async def run(self) -> RecalculationSummary:
        """
        Execute the run.

        Raises:
            Whatever the snapshot loader or the sale listing raises; nothing
            has been written at that point.
        """
        started_at = datetime.now(timezone.utc)
        logger.info("Starting commission recalculation...")

        try:
            snapshot = await self._load_snapshot()
        except Exception as e:
            logger.error(f"Commission recalculation aborted, snapshot unavailable: {e}")
            raise

        records = await self._store.list_sales()
        logger.info(f"Found {len(records)} sales with existing commission data")

        queue: asyncio.Queue = asyncio.Queue()
        for record in records:
            queue.put_nowait(record)

        results: List[ItemResult] = []
        worker_count = min(self._max_workers, len(records))
        workers = [
            asyncio.create_task(self._worker(queue, snapshot, results))
            for _ in range(worker_count)
        ]
        if workers:
            await asyncio.gather(*workers)

        summary = RecalculationSummary.from_results(
            results,
            total=len(records),
            settings_id=snapshot.settings.settings_id,
            started_at=started_at,
        )
        summary.not_processed = len(records) - summary.processed
        summary.cancelled = self.cancelled
        summary.finished_at = datetime.now(timezone.utc)

        logger.info(
            f"Commission recalculation finished: {summary.updated} updated, "
            f"{summary.skipped} skipped, {summary.errored} errors, "
            f"{summary.not_processed} not processed (of {summary.total})"
        )

        await self._emit_audit(summary)
        return summary

    async def _worker(
        self,
        queue: asyncio.Queue,
        snapshot: CommissionSnapshot,
        results: List[ItemResult],
    ) -> None:
        while not self._cancel_event.is_set():
            try:
                record = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results.append(await self.process_sale(record, snapshot))

    async def process_sale(
        self,
        record: SaleRecord,
        snapshot: CommissionSnapshot,
    ) -> ItemResult:
        """Re-evaluate and persist one sale, classifying the outcome."""
        if record.user_id is None:
            logger.warning(f"Skipping sale {record.sale_number} - no user data")
            return ItemResult(record.sale_id, record.sale_number, ItemOutcome.SKIPPED, reason="missing user")

        if record.liters is None:
            logger.warning(f"Skipping sale {record.sale_number} - no liters recorded")
            return ItemResult(record.sale_id, record.sale_number, ItemOutcome.SKIPPED, reason="missing liters")

        try:
            context = SaleContext(
                total_amount=record.total_amount,
                liters=record.liters,
                user_tier=record.user_tier or Tier.LEAD,
                sales_count=record.sales_count,
                network_size=record.network_size,
                growth_rate=record.growth_rate,
                as_of=snapshot.loaded_at,
            )
            result = evaluate_sale(context, snapshot.settings, snapshot.rules)

            async with self._locks.lock_for(record.sale_id):
                await self._store.write_result(record, result, snapshot)
        except Exception as e:
            logger.error(f"Error updating sale {record.sale_number}: {e}")
            return ItemResult(record.sale_id, record.sale_number, ItemOutcome.ERRORED, reason=str(e))

        logger.info(
            f"Updated sale {record.sale_number}: {record.previous_amount} ({record.previous_rate}%) "
            f"-> {result.commission_amount} ({result.commission_rate}%), tier={result.tier.value}, "
            f"rule={result.rule_used}"
        )
        return ItemResult(
            record.sale_id,
            record.sale_number,
            ItemOutcome.UPDATED,
            result=result,
            previous_amount=record.previous_amount,
        )

    async def _emit_audit(self, summary: RecalculationSummary) -> None:
        if self._audit is None:
            return
        try:
            await self._audit(summary)
        except Exception as e:
            logger.warning(f"Failed to write recalculation audit record: {e}")


def sql_snapshot_loader(session_factory) -> SnapshotLoader:
    """Loader reading settings and rules in a single session."""
    async def load() -> CommissionSnapshot:
        async with session_factory() as db:
            return await load_commission_snapshot(db)

    return load


def sql_audit_sink(
    session_factory,
    actor_id: Optional[int] = None,
    ip_address: Optional[str] = None,
) -> AuditSink:
    """Audit sink appending one AuditLog row per run."""
    async def emit(summary: RecalculationSummary) -> None:
        async with session_factory() as db:
            await log_action(
                db=db,
                user_id=actor_id,
                action=AuditAction.RECALCULATE_COMMISSIONS,
                target_type="batch",
                action_metadata=summary.as_dict(),
                ip_address=ip_address,
            )
            await db.commit()

    return emit


# Job currently running in this process, if any
_running_job: Optional[RecalculationJob] = None


def get_running_job() -> Optional[RecalculationJob]:
    return _running_job


async def run_recalculation(
    session_factory,
    actor_id: Optional[int] = None,
    ip_address: Optional[str] = None,
    max_workers: Optional[int] = None,
) -> RecalculationSummary:
    """
    Run a database-backed recalculation and register it for cancellation.

    Raises:
        RuntimeError: another run is already in progress in this process
    """
    global _running_job

    if _running_job is not None:
        raise RuntimeError("A commission recalculation is already running")

    job = RecalculationJob(
        store=SqlSaleStore(session_factory),
        load_snapshot=sql_snapshot_loader(session_factory),
        max_workers=max_workers,
        audit=sql_audit_sink(session_factory, actor_id=actor_id, ip_address=ip_address),
    )
    _running_job = job
    try:
        return await job.run()
    finally:
        _running_job = None
