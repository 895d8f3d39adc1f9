"""
Base service class.

Provides common functionality for all service classes including session
management, logging, and the transaction decorator.
"""

import functools
import time
from collections.abc import Callable
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.utils.datetime_utils import Clock, utc_now
from affiliates.utils.exceptions import DuplicateError

# Type variable for generic decorator return types
T = TypeVar("T")

# Session.info key tracking nested @transaction calls
_DEPTH_KEY = "affiliates.transaction_depth"


class BaseService:
    """
    Base service class.

    Provides common functionality for all service classes:
    - Session management
    - Injectable clock
    - Logging with bound service context
    """

    def __init__(self, session: AsyncSession, clock: Clock = utc_now) -> None:
        """
        Initialize base service.

        Args:
            session: Async database session
            clock: Returns the current aware UTC datetime
        """
        self.session = session
        self.clock = clock
        self.logger = logger.bind(service=self.__class__.__name__)

    async def commit(self) -> None:
        """Commit current transaction."""
        await self.session.commit()

    async def rollback(self) -> None:
        """Rollback current transaction."""
        await self.session.rollback()

    async def refresh(self, obj: Any) -> None:
        """Refresh object from database."""
        await self.session.refresh(obj)


def transaction(func: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator making a service method one unit of work.

    The outermost decorated call commits on success and rolls back on
    exception. Decorated calls made from inside it join the running unit
    of work, so services sharing a session compose into one transaction.

    Usage:
        @transaction
        async def approve(self, affiliate_id: int):
            ...

    Args:
        func: Async method to wrap

    Returns:
        Wrapped async method
    """
    @functools.wraps(func)
    async def wrapper(self: BaseService, *args: Any, **kwargs: Any) -> Any:
        info = self.session.info
        depth = info.get(_DEPTH_KEY, 0)
        info[_DEPTH_KEY] = depth + 1
        try:
            result = await func(self, *args, **kwargs)
            if depth == 0:
                await self.commit()
            return result
        except DuplicateError as e:
            if depth == 0:
                await self.rollback()
                self.logger.warning(
                    f"Duplicate write rolled back in {func.__name__}: {e}"
                )
            raise
        except Exception as e:
            if depth == 0:
                await self.rollback()
                self.logger.error(
                    f"Transaction failed in {func.__name__}",
                    extra={
                        "error": str(e),
                        "function": func.__name__,
                    },
                    exc_info=True,
                )
            raise
        finally:
            info[_DEPTH_KEY] = depth

    return wrapper


def log_operation(func: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator to log method entry/exit with timing.

    Used on background batch operations.

    Args:
        func: Async method to wrap

    Returns:
        Wrapped async method
    """
    @functools.wraps(func)
    async def wrapper(self: BaseService, *args: Any, **kwargs: Any) -> Any:
        start_time = time.time()

        self.logger.info(
            f"Starting {func.__name__}",
            extra={
                "function": func.__name__,
                "kwargs_keys": list(kwargs.keys()),
            },
        )

        try:
            result = await func(self, *args, **kwargs)
        except Exception as e:
            self.logger.error(
                f"Failed {func.__name__}",
                extra={
                    "function": func.__name__,
                    "duration_seconds": round(time.time() - start_time, 3),
                    "error": str(e),
                    "success": False,
                },
                exc_info=True,
            )
            raise

        self.logger.info(
            f"Completed {func.__name__}",
            extra={
                "function": func.__name__,
                "duration_seconds": round(time.time() - start_time, 3),
                "success": True,
            },
        )
        return result

    return wrapper
