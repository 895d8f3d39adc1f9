"""
Dramatiq broker for the affiliate jobs.

Actors share one Redis broker under the "affiliates" namespace so the
engine's queues never mix with other dramatiq apps on the same Redis.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger

from affiliates.config.constants import (
    JOB_MAX_BACKOFF_MS,
    JOB_MAX_RETRIES,
    JOB_MIN_BACKOFF_MS,
)
from affiliates.config.settings import get_settings
from affiliates.utils.redis_utils import get_redis_url_masked

BROKER_NAMESPACE = "affiliates"

settings = get_settings()

broker = RedisBroker(
    host=settings.redis_host,
    port=settings.redis_port,
    password=settings.redis_password or None,
    db=settings.redis_db,
    namespace=BROKER_NAMESPACE,
)
broker.add_middleware(ShutdownNotifications())
broker.add_middleware(CurrentMessage())
broker.add_middleware(
    Retries(
        max_retries=JOB_MAX_RETRIES,
        min_backoff=JOB_MIN_BACKOFF_MS,
        max_backoff=JOB_MAX_BACKOFF_MS,
    )
)

dramatiq.set_broker(broker)

logger.info(
    f"Affiliate job broker ready on {get_redis_url_masked(settings)} "
    f"(namespace={BROKER_NAMESPACE})"
)
