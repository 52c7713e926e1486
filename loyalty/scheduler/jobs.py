"""
Background job definitions using APScheduler.

Jobs include:
- Periodic commission recalculation (when recalc_interval_hours > 0)
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from loyalty.config import settings
from loyalty.db import AsyncSessionLocal
from loyalty.services.recalculation import get_running_job, run_recalculation

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def commission_recalculation_job():
    """Recalculate stored commissions against the current settings and rules."""
    if get_running_job() is not None:
        logger.info("Commission recalculation job skipped: a run is already in progress")
        return

    try:
        summary = await run_recalculation(AsyncSessionLocal)
        logger.info(
            f"Commission recalculation job: {summary.updated} updated, "
            f"{summary.errored} errors"
        )
    except Exception as e:
        logger.error(f"Commission recalculation job error: {e}")


def setup_scheduler() -> bool:
    """
    Configure and add all scheduled jobs.

    Called during application startup. Returns False when no job is enabled.
    """
    if settings.recalc_interval_hours <= 0:
        logger.info("Scheduled commission recalculation disabled")
        return False

    scheduler.add_job(
        commission_recalculation_job,
        trigger=IntervalTrigger(hours=settings.recalc_interval_hours),
        id="commission_recalculation",
        name="Recalculate commissions",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    logger.info(
        f"Scheduler configured: commission recalculation every "
        f"{settings.recalc_interval_hours}h"
    )
    return True
