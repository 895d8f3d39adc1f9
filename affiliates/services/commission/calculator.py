"""
Commission calculator.

Picks the rate that applies to a sale and converts it to cents.
"""

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.repositories.affiliate_repository import AffiliateRepository
from affiliates.repositories.campaign_repository import (
    CampaignRepository,
    CommissionTierRepository,
    ProductCommissionRepository,
)
from affiliates.services.base_service import BaseService
from affiliates.services.interfaces import AbstractCommissionCalculator
from affiliates.services.schemas import RateResolution
from affiliates.utils.datetime_utils import Clock, utc_now
from affiliates.utils.exceptions import NotFoundError
from affiliates.validators.rates import calculate_commission_amount

RATE_SOURCE_CUSTOM = "custom"
RATE_SOURCE_PRODUCT = "product"
RATE_SOURCE_TIER = "tier"
RATE_SOURCE_CAMPAIGN = "campaign"


class CommissionCalculator(BaseService, AbstractCommissionCalculator):
    """
    Rate resolution.

    Priority, first match wins:
    1. Affiliate custom rate
    2. Product rate of the affiliate's campaign
    3. Highest volume tier the affiliate's conversions qualify for
    4. Campaign default rate
    """

    def __init__(self, session: AsyncSession, clock: Clock = utc_now) -> None:
        super().__init__(session, clock)
        self.affiliates = AffiliateRepository(session)
        self.campaigns = CampaignRepository(session)
        self.tiers = CommissionTierRepository(session)
        self.product_rates = ProductCommissionRepository(session)

    async def resolve_rate(
        self,
        affiliate_id: int,
        sale_amount_cents: int,
        product_id: str | None = None,
    ) -> RateResolution:
        """
        Resolve rate and amount for a sale.

        Args:
            affiliate_id: Affiliate earning the commission
            sale_amount_cents: Sale amount in cents
            product_id: Product sold, if known

        Returns:
            Rate, type, amount and which rule supplied them

        Raises:
            NotFoundError: If affiliate or its campaign is missing
        """
        # Conversions may have changed through a bulk UPDATE in this session
        affiliate = await self.affiliates.get_by_id(affiliate_id, fresh=True)
        if not affiliate:
            raise NotFoundError(f"Affiliate {affiliate_id} not found")

        if (
            affiliate.custom_commission_type is not None
            and affiliate.custom_commission_value is not None
        ):
            return self._resolution(
                sale_amount_cents,
                affiliate.custom_commission_type,
                affiliate.custom_commission_value,
                RATE_SOURCE_CUSTOM,
            )

        campaign = await self.campaigns.get_by_id(affiliate.campaign_id)
        if not campaign:
            raise NotFoundError(f"Campaign {affiliate.campaign_id} not found")

        if product_id is not None:
            product_rate = await self.product_rates.get_for_product(
                campaign.id, product_id
            )
            if product_rate:
                return self._resolution(
                    sale_amount_cents,
                    product_rate.commission_type,
                    product_rate.commission_value,
                    RATE_SOURCE_PRODUCT,
                )

        tier = await self.tiers.get_qualifying_tier(
            campaign.id, affiliate.total_conversions
        )
        if tier:
            return self._resolution(
                sale_amount_cents,
                tier.commission_type,
                tier.commission_value,
                RATE_SOURCE_TIER,
            )

        return self._resolution(
            sale_amount_cents,
            campaign.commission_type,
            campaign.commission_value,
            RATE_SOURCE_CAMPAIGN,
        )

    @staticmethod
    def _resolution(
        sale_amount_cents: int,
        commission_type: str,
        value: Decimal,
        source: str,
    ) -> RateResolution:
        return RateResolution(
            rate=Decimal(str(value)),
            commission_type=commission_type,
            amount_cents=calculate_commission_amount(
                sale_amount_cents, commission_type, value
            ),
            source=source,
        )
