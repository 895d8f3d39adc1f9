"""
Affiliate stats recovery task.

Re-derives affiliate counters from the referral and commission tables.
"""

import dramatiq
from loguru import logger

from affiliates.config.constants import JOB_TIME_LIMIT_LONG
from affiliates.repositories.affiliate_repository import AffiliateRepository
from affiliates.services.commission.ledger import CommissionLedger
from jobs.async_runner import run_async, task_session_maker


@dramatiq.actor(max_retries=3, time_limit=JOB_TIME_LIMIT_LONG)
def recompute_affiliate_stats_task(affiliate_id: int | None = None) -> None:
    """
    Recompute counters of one affiliate, or of all when id is None.

    Args:
        affiliate_id: Affiliate to repair
    """
    logger.info(f"Starting stats recompute (affiliate_id={affiliate_id})...")
    try:
        count = run_async(_recompute_async(affiliate_id))
    except Exception as e:
        logger.exception(f"Stats recompute failed: {e}")
        raise
    logger.info(f"Stats recompute complete: {count} affiliates")


async def _recompute_async(affiliate_id: int | None) -> int:
    async with task_session_maker() as session_maker:
        async with session_maker() as session:
            if affiliate_id is not None:
                ids = [affiliate_id]
            else:
                ids = [a.id for a in await AffiliateRepository(session).find_all()]
            ledger = CommissionLedger(session)
            for pk in ids:
                await ledger.recompute_stats(pk)
            return len(ids)
