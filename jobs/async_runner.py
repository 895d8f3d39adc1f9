"""
Async runner for dramatiq tasks.

Runs async engine code inside synchronous dramatiq actors, one event loop
per worker thread.
"""

import asyncio
import threading
from collections.abc import Coroutine
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from affiliates.config.database import create_engine, create_session_maker
from affiliates.config.settings import get_settings

T = TypeVar("T")

# Thread-local storage for event loops
_thread_local = threading.local()


def get_event_loop() -> asyncio.AbstractEventLoop:
    """
    Get or create event loop for current thread.

    Reusing one loop per thread prevents "Future attached to a different
    loop" errors from the database driver.
    """
    loop = getattr(_thread_local, "loop", None)
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.loop = loop
        logger.debug(
            f"Created new event loop for thread {threading.current_thread().name}"
        )
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run async coroutine in the thread's event loop.

    Args:
        coro: Async coroutine to run

    Returns:
        Result of the coroutine
    """
    loop = get_event_loop()
    try:
        return loop.run_until_complete(coro)
    except Exception as e:
        logger.exception(f"Error running async coroutine: {e}")
        raise


@asynccontextmanager
async def task_session_maker():
    """
    Session factory bound to a fresh NullPool engine.

    The engine lives only for the task, so no connection crosses event
    loops or threads.

    Usage:
        async with task_session_maker() as session_maker:
            async with session_maker() as session:
                ...

    Yields:
        async_sessionmaker for the current event loop
    """
    settings = get_settings()
    engine = create_engine(settings.database_url, use_null_pool=True)
    maker: async_sessionmaker[AsyncSession] = create_session_maker(engine)
    try:
        yield maker
    finally:
        await engine.dispose()
