"""
Transactional outbox.

Services write lifecycle events in the same transaction as the change they
describe. The dispatcher delivers them to hooks after commit.
"""

import inspect
from dataclasses import asdict, dataclass
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from affiliates.models.outbox_event import OutboxEvent
from affiliates.repositories.outbox_repository import OutboxRepository
from affiliates.services.hooks import LifecycleHooks, build_payload
from affiliates.utils.datetime_utils import Clock, utc_now


class OutboxWriter:
    """Appends lifecycle events to the outbox table."""

    def __init__(self, session: AsyncSession) -> None:
        self.repository = OutboxRepository(session)

    async def add(self, event_type: str, payload: Any) -> OutboxEvent:
        """
        Write an event inside the caller's transaction.

        Args:
            event_type: Lifecycle event name
            payload: Payload dataclass

        Returns:
            Created outbox event
        """
        return await self.repository.create(
            event_type=str(event_type), payload=asdict(payload)
        )


@dataclass
class DispatchStats:
    """Result of one dispatch pass."""

    delivered: int = 0
    failed: int = 0
    skipped: int = 0


class OutboxDispatcher:
    """
    Delivers committed outbox events to lifecycle hooks.

    Each pass runs in its own session. Hook failures are recorded on the
    event and retried on later passes until max_attempts is reached.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        hooks: LifecycleHooks | None = None,
        batch_size: int = 100,
        max_attempts: int = 5,
        clock: Clock = utc_now,
    ) -> None:
        self.session_maker = session_maker
        self.hooks = hooks or LifecycleHooks()
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.clock = clock
        self.logger = logger.bind(service=self.__class__.__name__)

    async def dispatch_pending(self) -> DispatchStats:
        """
        Deliver pending events once.

        Returns:
            Counts of delivered, failed and skipped events
        """
        stats = DispatchStats()
        async with self.session_maker() as session:
            repository = OutboxRepository(session)
            events = await repository.get_pending(
                self.batch_size, self.max_attempts
            )
            for event in events:
                handler = self.hooks.handler_for(event.event_type)
                if handler is None:
                    await repository.mark_dispatched(event, self.clock())
                    stats.skipped += 1
                    continue
                try:
                    result = handler(build_payload(event.event_type, event.payload))
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    # Hook failures never propagate into engine state
                    self.logger.error(
                        f"Lifecycle hook failed for {event.event_type}",
                        extra={
                            "outbox_event_id": event.id,
                            "attempt": event.attempts + 1,
                            "error": str(e),
                        },
                        exc_info=True,
                    )
                    await repository.mark_failed(event, f"{type(e).__name__}: {e}")
                    stats.failed += 1
                else:
                    await repository.mark_dispatched(event, self.clock())
                    stats.delivered += 1
            await session.commit()

        if events:
            self.logger.info(
                "Outbox dispatch finished",
                extra={
                    "delivered": stats.delivered,
                    "failed": stats.failed,
                    "skipped": stats.skipped,
                },
            )
        return stats
