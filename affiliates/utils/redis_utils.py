"""Redis connection utilities.

Provides helper functions for creating Redis connections from settings.
"""

import redis.asyncio as redis

from affiliates.config.settings import Settings


def get_redis_client(settings: Settings) -> redis.Redis:
    """
    Create a Redis client from settings.

    Args:
        settings: Application settings

    Returns:
        redis.Redis: Client with decode_responses=True
    """
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password,
        db=settings.redis_db,
        decode_responses=True,
    )


def get_redis_url(settings: Settings) -> str:
    """
    Build Redis URL from settings.

    WARNING: This URL contains the password in plaintext. Use
    get_redis_url_masked() for logging.

    Returns:
        str: redis://[:[password]@]host:port/db
    """
    if settings.redis_password:
        return (
            f"redis://:{settings.redis_password}@{settings.redis_host}:"
            f"{settings.redis_port}/{settings.redis_db}"
        )
    return f"redis://{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"


def get_redis_url_masked(settings: Settings) -> str:
    """Build Redis URL with masked password for safe logging."""
    if settings.redis_password:
        return (
            f"redis://:****@{settings.redis_host}:"
            f"{settings.redis_port}/{settings.redis_db}"
        )
    return f"redis://{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
