"""
Background job scheduler.

Enqueues the periodic affiliate jobs to the dramatiq broker. The scheduler
only triggers jobs; workers run them.
"""

import asyncio
import signal

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from affiliates.config.logging import setup_logging
from affiliates.config.settings import get_settings
from jobs.health import set_scheduler, start_health_server, stop_health_server
from jobs.tasks.expire_referrals import expire_referrals_task
from jobs.tasks.outbox_dispatch import dispatch_outbox_task
from jobs.tasks.payout_batch import process_due_payouts_task

JOB_DEFAULTS = {
    "coalesce": True,
    "max_instances": 1,
    "misfire_grace_time": 60,
}


def create_scheduler() -> AsyncIOScheduler:
    """
    Build the scheduler with the affiliate jobs registered.

    Returns:
        Scheduler, not yet started
    """
    scheduler = AsyncIOScheduler(
        jobstores={"default": MemoryJobStore()},
        executors={"default": AsyncIOExecutor()},
        job_defaults=JOB_DEFAULTS,
        timezone="UTC",
    )

    scheduler.add_job(
        expire_referrals_task.send,
        "cron",
        hour=2,
        minute=0,
        id="expire_referrals",
        name="Expire stale referrals",
        replace_existing=True,
    )
    scheduler.add_job(
        process_due_payouts_task.send,
        "cron",
        hour=3,
        minute=0,
        id="process_due_payouts",
        name="Batch due payouts",
        replace_existing=True,
    )
    scheduler.add_job(
        dispatch_outbox_task.send,
        "interval",
        minutes=1,
        id="dispatch_outbox",
        name="Dispatch lifecycle events",
        replace_existing=True,
    )
    return scheduler


async def main() -> None:
    """Run the scheduler until SIGINT or SIGTERM."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)

    scheduler = create_scheduler()
    scheduler.start()
    set_scheduler(scheduler)
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")

    runner, _ = await start_health_server(port=settings.health_check_port)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down scheduler...")
        scheduler.shutdown(wait=False)
        await stop_health_server(runner)


if __name__ == "__main__":
    asyncio.run(main())
