"""
Outbox dispatch task.

Delivers committed lifecycle events to the hooks registered in the worker
process. Events whose hooks fail stay pending until max attempts.
"""

import dramatiq
from loguru import logger

from affiliates.config.constants import JOB_TIME_LIMIT_SHORT
from affiliates.config.settings import get_settings
from affiliates.services.hooks import LifecycleHooks
from affiliates.services.outbox import DispatchStats, OutboxDispatcher
from jobs.async_runner import run_async, task_session_maker

# Hooks registered by the host when the worker starts
_hooks: LifecycleHooks | None = None


def set_lifecycle_hooks(hooks: LifecycleHooks) -> None:
    """
    Register the host's lifecycle hooks for this worker.

    Args:
        hooks: Hook callbacks
    """
    global _hooks
    _hooks = hooks
    logger.info("Lifecycle hooks registered for outbox dispatch")


@dramatiq.actor(max_retries=1, time_limit=JOB_TIME_LIMIT_SHORT)
def dispatch_outbox_task() -> None:
    """Deliver pending lifecycle events."""
    try:
        stats = run_async(_dispatch_outbox_async())
    except Exception as e:
        logger.exception(f"Outbox dispatch failed: {e}")
        raise
    if stats.delivered or stats.failed:
        logger.info(
            f"Outbox dispatch: {stats.delivered} delivered, {stats.failed} failed"
        )


async def _dispatch_outbox_async() -> DispatchStats:
    settings = get_settings()
    async with task_session_maker() as session_maker:
        dispatcher = OutboxDispatcher(
            session_maker,
            _hooks,
            batch_size=settings.outbox_batch_size,
            max_attempts=settings.outbox_max_attempts,
        )
        return await dispatcher.dispatch_pending()
