"""
Analytics event repository.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.models.analytics_event import AnalyticsEvent
from affiliates.repositories.base import BaseRepository


class AnalyticsEventRepository(BaseRepository[AnalyticsEvent]):
    """Append-only analytics event log."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize analytics event repository."""
        super().__init__(AnalyticsEvent, session)

    async def get_recent(
        self,
        affiliate_id: int,
        event_type: str | None = None,
        limit: int = 50,
    ) -> list[AnalyticsEvent]:
        """
        Get recent events of an affiliate, newest first.

        Args:
            affiliate_id: Affiliate ID
            event_type: Optional type filter
            limit: Max number of results

        Returns:
            List of events
        """
        stmt = select(AnalyticsEvent).where(
            AnalyticsEvent.affiliate_id == affiliate_id
        )
        if event_type:
            stmt = stmt.where(AnalyticsEvent.event_type == event_type)
        stmt = stmt.order_by(AnalyticsEvent.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
