"""
Referral expiry task.

Moves clicked referrals whose attribution window lapsed to expired.
Runs daily; safe to run more often or concurrently.
"""

import dramatiq
from loguru import logger

from affiliates.config.constants import JOB_TIME_LIMIT_LONG
from affiliates.config.settings import get_settings
from affiliates.services.referral.tracker import ReferralTracker
from jobs.async_runner import run_async, task_session_maker


@dramatiq.actor(max_retries=3, time_limit=JOB_TIME_LIMIT_LONG)
def expire_referrals_task() -> None:
    """Expire stale clicked referrals."""
    logger.info("Starting referral expiry...")
    try:
        expired = run_async(_expire_referrals_async())
    except Exception as e:
        logger.exception(f"Referral expiry failed: {e}")
        raise
    logger.info(f"Referral expiry complete: {expired} expired")


async def _expire_referrals_async() -> int:
    settings = get_settings()
    async with task_session_maker() as session_maker:
        async with session_maker() as session:
            tracker = ReferralTracker(
                session,
                ip_hash_salt=settings.ip_hash_salt,
                expire_batch_size=settings.expire_batch_size,
            )
            return await tracker.expire_referrals()
