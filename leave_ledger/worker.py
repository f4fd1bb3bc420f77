"""Worker process for scheduled balance jobs.

Runs an asyncio loop that, once a day, seeds missing balances and tops up
after-earning accruals for every organization (auto recalculation) and,
on January 1, carries the closed year's balances forward.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date

from leave_ledger.config import get_settings
from leave_ledger.db import get_session_factory
from leave_ledger.models.enums import RecalculationMode
from leave_ledger.services.recalculation import (
    carry_forward_balances,
    list_org_ids_with_assignments,
    recalculate_all,
)

logger = logging.getLogger(__name__)


async def run_daily_jobs(today: date) -> None:
    """Run one day's jobs for every organization with active assignments."""
    session_factory = get_session_factory()

    async with session_factory() as session:
        org_ids = await list_org_ids_with_assignments(session, today)

    for org_id in org_ids:
        if today.month == 1 and today.day == 1:
            try:
                async with session_factory() as session:
                    await carry_forward_balances(session, org_id, today.year - 1)
            except Exception:
                logger.exception("Carry-forward run failed for org=%s", org_id)

        try:
            async with session_factory() as session:
                await recalculate_all(session, org_id, RecalculationMode.AUTO, today)
        except Exception:
            logger.exception("Recalculation run failed for org=%s", org_id)


async def run_balance_loop() -> None:
    """Main worker loop."""
    interval = get_settings().worker_interval_seconds
    logger.info("Balance worker started")

    while True:
        today = date.today()
        logger.info("Running balance jobs for %s", today)
        try:
            await run_daily_jobs(today)
        except Exception:
            logger.exception("Balance jobs failed for %s", today)

        await asyncio.sleep(interval)


def main() -> None:
    """Entry point for the worker process."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(run_balance_loop())


if __name__ == "__main__":
    main()
