"""
Referral queries.

Read-only lookups and the referee discount offered to referred customers.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.models.affiliate import Affiliate
from affiliates.models.referral import Referral
from affiliates.repositories.affiliate_repository import AffiliateRepository
from affiliates.repositories.campaign_repository import CampaignRepository
from affiliates.repositories.referral_repository import ReferralRepository
from affiliates.services.base_service import BaseService
from affiliates.services.results import Blocked, BlockReason, Ok
from affiliates.services.schemas import RefereeDiscount
from affiliates.utils.datetime_utils import Clock, utc_now
from affiliates.utils.pagination import Page
from affiliates.validators.common import normalize_code


class ReferralQueryManager(BaseService):
    """Referral lookups."""

    def __init__(self, session: AsyncSession, clock: Clock = utc_now) -> None:
        super().__init__(session, clock)
        self.affiliates = AffiliateRepository(session)
        self.campaigns = CampaignRepository(session)
        self.referrals = ReferralRepository(session)

    async def get_by_referral_id(self, referral_id: str) -> Referral | None:
        return await self.referrals.get_by_referral_id(referral_id)

    async def get_by_user_id(self, user_id: str) -> Referral | None:
        return await self.referrals.get_by_user_id(user_id)

    async def get_by_customer_id(self, customer_id: str) -> Referral | None:
        return await self.referrals.get_by_customer_id(customer_id)

    async def list_by_affiliate(
        self,
        affiliate_id: int,
        status: str | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[Referral]:
        return await self.referrals.list_by_affiliate(
            affiliate_id, status=status, limit=limit, cursor=cursor
        )

    async def get_referee_discount(
        self,
        referral_id: str | None = None,
        user_id: str | None = None,
        affiliate_code: str | None = None,
    ) -> Ok[RefereeDiscount] | Blocked:
        """
        Find the discount a referred customer is entitled to.

        Lookup order: referral id, then user id, then affiliate code. A
        referral id only counts within its cookie window; user and code
        lookups are not time-limited.

        Returns:
            Ok(discount) or Blocked(reason)
        """
        affiliate: Affiliate | None = None

        if referral_id:
            referral = await self.referrals.get_by_referral_id(referral_id)
            if referral:
                if referral.is_expired_at(self.clock()):
                    return Blocked(BlockReason.REFERRAL_EXPIRED)
                affiliate = await self.affiliates.get_by_id(referral.affiliate_id)

        if affiliate is None and user_id:
            referral = await self.referrals.get_by_user_id(user_id)
            if referral:
                affiliate = await self.affiliates.get_by_id(referral.affiliate_id)

        if affiliate is None and affiliate_code:
            affiliate = await self.affiliates.get_by_code(
                normalize_code(affiliate_code)
            )

        if affiliate is None:
            return Blocked(BlockReason.AFFILIATE_NOT_FOUND)
        if not affiliate.is_approved:
            return Blocked(BlockReason.AFFILIATE_NOT_APPROVED)

        campaign = await self.campaigns.get_by_id(affiliate.campaign_id)
        if not campaign or not campaign.is_active:
            return Blocked(BlockReason.CAMPAIGN_INACTIVE)
        if (
            not campaign.referee_discount_type
            or campaign.referee_discount_value is None
        ):
            return Blocked(BlockReason.NO_DISCOUNT)

        return Ok(
            RefereeDiscount(
                discount_type=campaign.referee_discount_type,
                discount_value=campaign.referee_discount_value,
                coupon_id=campaign.referee_coupon_id,
                affiliate_code=affiliate.code,
                affiliate_display_name=affiliate.display_name,
            )
        )
