"""
Outbox repository.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.models.outbox_event import OutboxEvent
from affiliates.repositories.base import BaseRepository


class OutboxRepository(BaseRepository[OutboxEvent]):
    """Outbox event repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize outbox repository."""
        super().__init__(OutboxEvent, session)

    async def get_pending(
        self, limit: int, max_attempts: int
    ) -> list[OutboxEvent]:
        """
        Get undelivered events oldest first, locking them.

        Args:
            limit: Max number of events
            max_attempts: Skip events that failed this many times

        Returns:
            List of events
        """
        stmt = (
            select(OutboxEvent)
            .where(
                OutboxEvent.dispatched_at.is_(None),
                OutboxEvent.attempts < max_attempts,
            )
            .order_by(OutboxEvent.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_dispatched(self, event: OutboxEvent, now: datetime) -> None:
        """Record successful delivery."""
        event.attempts += 1
        event.dispatched_at = now
        event.last_error = None
        await self.session.flush()

    async def mark_failed(self, event: OutboxEvent, error: str) -> None:
        """Record failed delivery attempt."""
        event.attempts += 1
        event.last_error = error[:2000]
        await self.session.flush()
