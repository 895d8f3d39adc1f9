"""
Referral repository.

Data access layer for Referral model. State transitions are conditional
UPDATE statements so concurrent writers cannot overwrite each other.
"""

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.models.enums import ReferralStatus
from affiliates.models.referral import Referral
from affiliates.repositories.base import BaseRepository
from affiliates.utils.pagination import Page


class ReferralRepository(BaseRepository[Referral]):
    """Referral repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral repository."""
        super().__init__(Referral, session)

    async def get_by_referral_id(self, referral_id: str) -> Referral | None:
        """Get referral by the opaque id handed to the visitor."""
        return await self.get_by(referral_id=referral_id)

    async def get_by_user_id(self, user_id: str) -> Referral | None:
        """Get referral bound to host user."""
        return await self.get_by(user_id=user_id)

    async def get_by_customer_id(self, customer_id: str) -> Referral | None:
        """Get referral bound to payment customer."""
        return await self.get_by(customer_id=customer_id)

    async def list_by_affiliate(
        self,
        affiliate_id: int,
        status: str | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[Referral]:
        """
        List referrals of an affiliate newest first.

        Args:
            affiliate_id: Affiliate ID
            status: Optional status filter
            limit: Page size
            cursor: Cursor of previous page

        Returns:
            Page of referrals
        """
        conditions = [Referral.affiliate_id == affiliate_id]
        if status:
            conditions.append(Referral.status == status)
        return await self.find_page(*conditions, limit=limit, cursor=cursor)

    async def count_clicks_since(self, ip_hash: str, since: datetime) -> int:
        """
        Count referrals created from a hashed address since a time.

        Args:
            ip_hash: Hashed network address
            since: Window start

        Returns:
            Number of clicks
        """
        stmt = select(func.count()).where(
            Referral.ip_hash == ip_hash,
            Referral.clicked_at >= since,
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def bind_user(
        self, referral_pk: int, user_id: str, now: datetime
    ) -> bool:
        """
        Transition a clicked, unexpired referral to signed_up.

        Args:
            referral_pk: Referral primary key
            user_id: Host user to bind
            now: Current time

        Returns:
            True if the referral was transitioned
        """
        stmt = (
            update(Referral)
            .where(
                Referral.id == referral_pk,
                Referral.status == ReferralStatus.CLICKED,
                Referral.user_id.is_(None),
                Referral.expires_at >= now,
            )
            .values(
                status=ReferralStatus.SIGNED_UP.value,
                user_id=user_id,
                signed_up_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def bind_customer(self, referral_pk: int, customer_id: str) -> bool:
        """
        Bind payment customer to a referral that has none.

        Returns:
            True if the customer was bound

        Raises:
            IntegrityError: If another referral already binds the customer
        """
        stmt = (
            update(Referral)
            .where(Referral.id == referral_pk, Referral.customer_id.is_(None))
            .values(customer_id=customer_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def mark_converted(self, referral_pk: int, now: datetime) -> bool:
        """
        Transition referral to converted once.

        Returns:
            True if the referral was transitioned
        """
        stmt = (
            update(Referral)
            .where(
                Referral.id == referral_pk,
                Referral.status != ReferralStatus.CONVERTED,
            )
            .values(status=ReferralStatus.CONVERTED.value, converted_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def find_expired_ids(self, now: datetime, limit: int) -> list[int]:
        """Get ids of clicked referrals whose window has lapsed."""
        stmt = (
            select(Referral.id)
            .where(
                Referral.status == ReferralStatus.CLICKED,
                Referral.expires_at < now,
            )
            .order_by(Referral.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def expire(self, referral_pks: list[int], now: datetime) -> int:
        """
        Transition referrals to expired.

        Status and expiry are re-checked inside the UPDATE so a referral that
        signed up after it was selected is left alone.

        Returns:
            Number of referrals expired
        """
        if not referral_pks:
            return 0
        stmt = (
            update(Referral)
            .where(
                Referral.id.in_(referral_pks),
                Referral.status == ReferralStatus.CLICKED,
                Referral.expires_at < now,
            )
            .values(status=ReferralStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def count_by_status(
        self, affiliate_id: int | None = None
    ) -> dict[str, int]:
        """
        Count referrals per status.

        Args:
            affiliate_id: Restrict to one affiliate

        Returns:
            Mapping status -> count, every status present
        """
        stmt = select(Referral.status, func.count()).group_by(Referral.status)
        if affiliate_id is not None:
            stmt = stmt.where(Referral.affiliate_id == affiliate_id)
        result = await self.session.execute(stmt)
        counts = {status.value: 0 for status in ReferralStatus}
        counts.update({row[0]: row[1] for row in result.all()})
        return counts

    async def count_funnel(self, affiliate_id: int) -> tuple[int, int, int]:
        """
        Re-derive click, signup and conversion counts of an affiliate.

        Returns:
            (clicks, signups, conversions)
        """
        stmt = select(
            func.count(),
            func.count(Referral.signed_up_at),
            func.count(Referral.converted_at),
        ).where(Referral.affiliate_id == affiliate_id)
        result = await self.session.execute(stmt)
        clicks, signups, conversions = result.one()
        return clicks, signups, conversions
