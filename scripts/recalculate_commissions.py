"""
Recalculate stored sale commissions against the current settings and rules.

Usage:
    python scripts/recalculate_commissions.py

Or with custom DATABASE_URL / pool size:
    DATABASE_URL="postgresql://..." python scripts/recalculate_commissions.py --workers 8

Only sales that already carry commission data are touched. Exits with
status 1 when the run could not start or some sales failed.
"""

import argparse
import asyncio
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from loyalty.config import settings
from loyalty.db import AsyncSessionLocal, engine
from loyalty.services.recalculation import run_recalculation

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("recalculate_commissions")


async def main(workers: int) -> int:
    try:
        summary = await run_recalculation(AsyncSessionLocal, max_workers=workers)
    except Exception as e:
        logger.error(f"Recalculation failed: {e}")
        return 1
    finally:
        await engine.dispose()

    print("\n" + "=" * 50)
    print("COMMISSION RECALCULATION SUMMARY")
    print("=" * 50)
    print(f"Settings version: #{summary.settings_id}")
    print(f"Sales found:      {summary.total}")
    print(f"Updated:          {summary.updated}")
    print(f"Skipped:          {summary.skipped}")
    print(f"Errors:           {summary.errored}")
    if summary.not_processed:
        print(f"Not processed:    {summary.not_processed}")

    for error in summary.errors:
        print(f"  - {error['sale_number']}: {error['error']}")

    return 1 if summary.errored else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Recalculate sale commissions")
    parser.add_argument(
        "--workers",
        type=int,
        default=settings.recalc_max_workers,
        help="Number of concurrent workers",
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(main(args.workers)))
