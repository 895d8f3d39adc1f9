"""
Commission repository.

Data access layer for Commission model.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.models.commission import Commission
from affiliates.models.enums import CommissionStatus
from affiliates.repositories.base import BaseRepository
from affiliates.utils.pagination import Page


@dataclass
class DueTotal:
    """Approved, due commission total of one affiliate."""

    affiliate_id: int
    total_due_cents: int
    commission_count: int


class CommissionRepository(BaseRepository[Commission]):
    """Commission repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission repository."""
        super().__init__(Commission, session)

    async def get_by_external_event_id(
        self, external_event_id: str
    ) -> Commission | None:
        """Get commission created for a payment event."""
        return await self.get_by(external_event_id=external_event_id)

    async def get_by_charge_id(self, charge_id: str) -> Commission | None:
        """Get the latest commission created for a charge."""
        stmt = (
            select(Commission)
            .where(Commission.charge_id == charge_id)
            .order_by(Commission.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_subscription(self, subscription_id: str) -> list[Commission]:
        """Get commissions of a subscription, oldest first."""
        return await self.find_by(subscription_id=subscription_id)

    async def list_by_affiliate(
        self,
        affiliate_id: int,
        status: str | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[Commission]:
        """List commissions of an affiliate newest first."""
        conditions = [Commission.affiliate_id == affiliate_id]
        if status:
            conditions.append(Commission.status == status)
        return await self.find_page(*conditions, limit=limit, cursor=cursor)

    async def get_recent(self, affiliate_id: int, limit: int) -> list[Commission]:
        """Get the most recent commissions of an affiliate."""
        page = await self.list_by_affiliate(affiliate_id, limit=limit)
        return page.items

    async def get_due(self, affiliate_id: int, now: datetime) -> list[Commission]:
        """
        Get approved commissions past their due date.

        Args:
            affiliate_id: Affiliate ID
            now: Current time

        Returns:
            Commissions oldest first
        """
        stmt = (
            select(Commission)
            .where(
                Commission.affiliate_id == affiliate_id,
                Commission.status == CommissionStatus.APPROVED,
                Commission.due_at <= now,
            )
            .order_by(Commission.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_due_totals(self, now: datetime) -> list[DueTotal]:
        """Sum approved, due commissions per affiliate."""
        stmt = (
            select(
                Commission.affiliate_id,
                func.sum(Commission.commission_amount_cents),
                func.count(),
            )
            .where(
                Commission.status == CommissionStatus.APPROVED,
                Commission.due_at <= now,
            )
            .group_by(Commission.affiliate_id)
            .order_by(Commission.affiliate_id)
        )
        result = await self.session.execute(stmt)
        return [
            DueTotal(
                affiliate_id=row[0],
                total_due_cents=int(row[1] or 0),
                commission_count=row[2],
            )
            for row in result.all()
        ]

    async def get_many(self, commission_ids: list[int]) -> list[Commission]:
        """Get commissions by ids, oldest first."""
        if not commission_ids:
            return []
        stmt = (
            select(Commission)
            .where(Commission.id.in_(commission_ids))
            .order_by(Commission.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_payout(self, payout_id: int) -> list[Commission]:
        """Get commissions batched into a payout, reloading loaded rows."""
        stmt = (
            select(Commission)
            .where(Commission.payout_id == payout_id)
            .order_by(Commission.id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def assign_to_payout(
        self, commission_ids: list[int], payout_id: int
    ) -> int:
        """
        Move approved commissions into a payout.

        Returns:
            Number of commissions moved
        """
        if not commission_ids:
            return 0
        stmt = (
            update(Commission)
            .where(
                Commission.id.in_(commission_ids),
                Commission.status == CommissionStatus.APPROVED,
            )
            .values(
                status=CommissionStatus.PROCESSING.value, payout_id=payout_id
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def release_from_payout(self, payout_id: int) -> int:
        """
        Return processing commissions of a payout to approved.

        Returns:
            Number of commissions released
        """
        stmt = (
            update(Commission)
            .where(
                Commission.payout_id == payout_id,
                Commission.status == CommissionStatus.PROCESSING,
            )
            .values(status=CommissionStatus.APPROVED.value, payout_id=None)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def sum_by_status(self, affiliate_id: int) -> dict[str, tuple[int, int]]:
        """
        Sum sale and commission amounts per status for an affiliate.

        Returns:
            Mapping status -> (sale_cents, commission_cents)
        """
        stmt = (
            select(
                Commission.status,
                func.coalesce(func.sum(Commission.sale_amount_cents), 0),
                func.coalesce(func.sum(Commission.commission_amount_cents), 0),
            )
            .where(Commission.affiliate_id == affiliate_id)
            .group_by(Commission.status)
        )
        result = await self.session.execute(stmt)
        return {row[0]: (int(row[1]), int(row[2])) for row in result.all()}

    async def sum_unpaid(self, affiliate_id: int) -> tuple[int, int]:
        """
        Sum pending and approved commissions of an affiliate.

        Returns:
            (amount_cents, count)
        """
        stmt = select(
            func.coalesce(func.sum(Commission.commission_amount_cents), 0),
            func.count(),
        ).where(
            Commission.affiliate_id == affiliate_id,
            Commission.status.in_(
                [CommissionStatus.PENDING, CommissionStatus.APPROVED]
            ),
        )
        result = await self.session.execute(stmt)
        amount, count = result.one()
        return int(amount), count
