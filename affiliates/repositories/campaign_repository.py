"""
Campaign repository.

Data access layer for Campaign, CommissionTier and ProductCommission.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.models.campaign import Campaign, CommissionTier, ProductCommission
from affiliates.repositories.base import BaseRepository


class CampaignRepository(BaseRepository[Campaign]):
    """Campaign repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize campaign repository."""
        super().__init__(Campaign, session)

    async def get_by_slug(self, slug: str) -> Campaign | None:
        """Get campaign by slug."""
        return await self.get_by(slug=slug)

    async def get_default(self) -> Campaign | None:
        """Get the default campaign."""
        return await self.get_by(is_default=True)

    async def list_campaigns(self, active_only: bool = False) -> list[Campaign]:
        """
        List campaigns, default first.

        Args:
            active_only: Skip inactive campaigns

        Returns:
            List of campaigns
        """
        stmt = select(Campaign)
        if active_only:
            stmt = stmt.where(Campaign.is_active.is_(True))
        stmt = stmt.order_by(Campaign.is_default.desc(), Campaign.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def clear_default(self) -> None:
        """Unset the default flag on every campaign."""
        stmt = (
            update(Campaign)
            .where(Campaign.is_default.is_(True))
            .values(is_default=False)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self.session.flush()


class CommissionTierRepository(BaseRepository[CommissionTier]):
    """Volume tier repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize tier repository."""
        super().__init__(CommissionTier, session)

    async def list_for_campaign(self, campaign_id: int) -> list[CommissionTier]:
        """
        Get tiers of a campaign, highest threshold first.

        Args:
            campaign_id: Campaign ID

        Returns:
            Tiers sorted by min_referrals descending
        """
        stmt = (
            select(CommissionTier)
            .where(CommissionTier.campaign_id == campaign_id)
            .order_by(CommissionTier.min_referrals.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_qualifying_tier(
        self, campaign_id: int, conversions: int
    ) -> CommissionTier | None:
        """
        Get the highest tier whose threshold the conversion count meets.

        Args:
            campaign_id: Campaign ID
            conversions: Affiliate's total conversions

        Returns:
            Qualifying tier or None
        """
        stmt = (
            select(CommissionTier)
            .where(
                CommissionTier.campaign_id == campaign_id,
                CommissionTier.min_referrals <= conversions,
            )
            .order_by(CommissionTier.min_referrals.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class ProductCommissionRepository(BaseRepository[ProductCommission]):
    """Per-product rate repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize product commission repository."""
        super().__init__(ProductCommission, session)

    async def get_for_product(
        self, campaign_id: int, product_id: str
    ) -> ProductCommission | None:
        """Get the product-specific rate of a campaign."""
        return await self.get_by(campaign_id=campaign_id, product_id=product_id)

    async def list_for_campaign(self, campaign_id: int) -> list[ProductCommission]:
        """Get all product rates of a campaign."""
        return await self.find_by(campaign_id=campaign_id)
