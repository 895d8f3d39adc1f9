"""
Click velocity guards.

Limit how many clicks one network address may produce per hour.
"""

from datetime import datetime
from typing import Any

from loguru import logger
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.config.constants import CLICK_VELOCITY_WINDOW
from affiliates.repositories.referral_repository import ReferralRepository
from affiliates.services.interfaces import AbstractClickVelocityGuard


class DatabaseClickVelocityGuard(AbstractClickVelocityGuard):
    """Counts referrals created from the address within the window."""

    def __init__(self, session: AsyncSession) -> None:
        self.referrals = ReferralRepository(session)

    async def allow(self, ip_hash: str, limit: int, now: datetime) -> bool:
        count = await self.referrals.count_clicks_since(
            ip_hash, now - CLICK_VELOCITY_WINDOW
        )
        return count < limit


class RedisClickVelocityGuard(AbstractClickVelocityGuard):
    """
    Fixed-window counter in Redis.

    Redis outages degrade to allowing the click; the database still
    enforces every attribution invariant.
    """

    KEY_PREFIX = "affiliates:clicks"

    def __init__(self, redis_client: Any) -> None:
        self.redis_client = redis_client

    async def allow(self, ip_hash: str, limit: int, now: datetime) -> bool:
        window_seconds = int(CLICK_VELOCITY_WINDOW.total_seconds())
        bucket = int(now.timestamp()) // window_seconds
        key = f"{self.KEY_PREFIX}:{ip_hash}:{bucket}"
        try:
            count = await self.redis_client.incr(key)
            if count == 1:
                await self.redis_client.expire(key, window_seconds)
        except (RedisError, ConnectionError, TimeoutError) as e:
            logger.warning(
                f"Redis error in click velocity check: {type(e).__name__}: {e}. "
                "Continuing without velocity limit (degraded mode).",
            )
            return True
        return count <= limit
