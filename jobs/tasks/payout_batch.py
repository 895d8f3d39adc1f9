"""
Payout batch task.

Creates one pending payout per affiliate whose approved, due commissions
meet the campaign minimum.
"""

import dramatiq
from loguru import logger

from affiliates.config.constants import JOB_TIME_LIMIT_LONG
from affiliates.services.payout.aggregator import PayoutAggregator
from jobs.async_runner import run_async, task_session_maker


@dramatiq.actor(max_retries=3, time_limit=JOB_TIME_LIMIT_LONG)
def process_due_payouts_task() -> None:
    """Batch due commissions into payouts."""
    logger.info("Starting payout batch...")
    try:
        created = run_async(_process_due_payouts_async())
    except Exception as e:
        logger.exception(f"Payout batch failed: {e}")
        raise
    logger.info(f"Payout batch complete: {created} payouts created")


async def _process_due_payouts_async() -> int:
    async with task_session_maker() as session_maker:
        async with session_maker() as session:
            payouts = await PayoutAggregator(session).process_due_payouts()
            return len(payouts)
