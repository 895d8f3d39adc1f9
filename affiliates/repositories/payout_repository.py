"""
Payout repository.

Data access layer for Payout model.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.models.enums import PayoutStatus
from affiliates.models.payout import Payout
from affiliates.repositories.base import BaseRepository
from affiliates.utils.pagination import Page


class PayoutRepository(BaseRepository[Payout]):
    """Payout repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize payout repository."""
        super().__init__(Payout, session)

    async def list_payouts(
        self,
        affiliate_id: int | None = None,
        status: str | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[Payout]:
        """List payouts newest first."""
        conditions = []
        if affiliate_id is not None:
            conditions.append(Payout.affiliate_id == affiliate_id)
        if status:
            conditions.append(Payout.status == status)
        return await self.find_page(*conditions, limit=limit, cursor=cursor)

    async def sum_pending(self) -> tuple[int, int]:
        """
        Sum pending payouts across affiliates.

        Returns:
            (amount_cents, count)
        """
        stmt = select(
            func.coalesce(func.sum(Payout.amount_cents), 0), func.count()
        ).where(Payout.status == PayoutStatus.PENDING)
        result = await self.session.execute(stmt)
        amount, count = result.one()
        return int(amount), count
