"""
Affiliate repository.

Data access layer for Affiliate model, including atomic stat updates.
"""

from typing import Any

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.models.affiliate import STAT_COLUMNS, Affiliate
from affiliates.models.enums import AffiliateStatus
from affiliates.repositories.base import BaseRepository
from affiliates.utils.pagination import Page

TOP_AFFILIATE_SORT_COLUMNS = {
    "conversions": Affiliate.total_conversions,
    "revenue": Affiliate.total_revenue_cents,
    "commissions": Affiliate.total_commissions_cents,
}


class AffiliateRepository(BaseRepository[Affiliate]):
    """Affiliate repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize affiliate repository."""
        super().__init__(Affiliate, session)

    async def get_by_code(self, code: str) -> Affiliate | None:
        """
        Get affiliate by code.

        Args:
            code: Upper-case affiliate code

        Returns:
            Affiliate or None
        """
        return await self.get_by(code=code)

    async def get_by_user_id(self, user_id: str) -> Affiliate | None:
        """Get affiliate owned by host user."""
        return await self.get_by(user_id=user_id)

    async def code_exists(self, code: str) -> bool:
        """Check whether code is taken."""
        return await self.exists(code=code)

    async def list_affiliates(
        self,
        status: str | None = None,
        campaign_id: int | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[Affiliate]:
        """
        List affiliates newest first.

        Args:
            status: Optional status filter
            campaign_id: Optional campaign filter
            limit: Page size
            cursor: Cursor of previous page

        Returns:
            Page of affiliates
        """
        conditions = []
        if status:
            conditions.append(Affiliate.status == status)
        if campaign_id is not None:
            conditions.append(Affiliate.campaign_id == campaign_id)
        return await self.find_page(*conditions, limit=limit, cursor=cursor)

    async def increment_stats(self, affiliate_id: int, **deltas: int) -> None:
        """
        Atomically add to stat counters.

        Args:
            affiliate_id: Affiliate ID
            **deltas: Stat column -> non-negative increment
        """
        values = {}
        for column, delta in deltas.items():
            self._check_stat(column)
            values[column] = getattr(Affiliate, column) + delta
        await self._update_stats(affiliate_id, values)

    async def decrement_stats_clamped(
        self, affiliate_id: int, **deltas: int
    ) -> None:
        """
        Atomically subtract from stat counters, never below zero.

        Args:
            affiliate_id: Affiliate ID
            **deltas: Stat column -> amount to subtract
        """
        values = {}
        for column, delta in deltas.items():
            self._check_stat(column)
            current = getattr(Affiliate, column)
            values[column] = case(
                (current - delta < 0, 0), else_=current - delta
            )
        await self._update_stats(affiliate_id, values)

    async def set_stats(self, affiliate_id: int, **stats: int) -> None:
        """Overwrite stat counters with re-derived values."""
        for column in stats:
            self._check_stat(column)
        await self._update_stats(affiliate_id, dict(stats))

    async def count_by_status(self) -> dict[str, int]:
        """Count affiliates per status."""
        stmt = select(Affiliate.status, func.count()).group_by(Affiliate.status)
        result = await self.session.execute(stmt)
        counts = {status.value: 0 for status in AffiliateStatus}
        counts.update({row[0]: row[1] for row in result.all()})
        return counts

    async def count_for_campaign(self, campaign_id: int) -> int:
        """Count affiliates enrolled in a campaign."""
        return await self.count(campaign_id=campaign_id)

    async def sum_stats(self) -> dict[str, int]:
        """Sum every stat counter across affiliates."""
        stmt = select(
            *(
                func.coalesce(func.sum(getattr(Affiliate, column)), 0)
                for column in STAT_COLUMNS
            )
        )
        result = await self.session.execute(stmt)
        row = result.one()
        return {column: int(value) for column, value in zip(STAT_COLUMNS, row)}

    async def get_top(self, sort_by: str, limit: int) -> list[Affiliate]:
        """
        Get approved affiliates ordered by a stat.

        Args:
            sort_by: conversions, revenue or commissions
            limit: Max number of results

        Returns:
            List of affiliates
        """
        column = TOP_AFFILIATE_SORT_COLUMNS[sort_by]
        stmt = (
            select(Affiliate)
            .where(Affiliate.status == AffiliateStatus.APPROVED)
            .order_by(column.desc(), Affiliate.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _update_stats(
        self, affiliate_id: int, values: dict[str, Any]
    ) -> None:
        if not values:
            return
        stmt = (
            update(Affiliate)
            .where(Affiliate.id == affiliate_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    @staticmethod
    def _check_stat(column: str) -> None:
        if column not in STAT_COLUMNS:
            raise ValueError(f"Unknown stat column: {column}")
