"""
Attribution resolver.

Binds signed-up users and paying customers to referrals. Every refusal is a
silent no-op for the caller; the reason is kept in the Blocked result and
the log.
"""

import uuid
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.models.enums import (
    AnalyticsEventType,
    LifecycleEventType,
    ReferralStatus,
)
from affiliates.models.referral import Referral
from affiliates.repositories.affiliate_repository import AffiliateRepository
from affiliates.repositories.campaign_repository import CampaignRepository
from affiliates.repositories.referral_repository import ReferralRepository
from affiliates.services.analytics_service import AnalyticsService
from affiliates.services.base_service import BaseService, transaction
from affiliates.services.hooks import CustomerLinkedData
from affiliates.services.interfaces import AbstractAttributionResolver
from affiliates.services.outbox import OutboxWriter
from affiliates.services.results import Blocked, BlockReason, Ok
from affiliates.utils.datetime_utils import Clock, utc_now
from affiliates.utils.security import mask_customer_id
from affiliates.validators.common import normalize_code

CODE_ATTRIBUTION_LANDING_PAGE = "/"


class AttributionResolver(BaseService, AbstractAttributionResolver):
    """Signup and customer attribution with fraud invariants."""

    def __init__(self, session: AsyncSession, clock: Clock = utc_now) -> None:
        super().__init__(session, clock)
        self.affiliates = AffiliateRepository(session)
        self.campaigns = CampaignRepository(session)
        self.referrals = ReferralRepository(session)
        self.analytics = AnalyticsService(session, clock)
        self.outbox = OutboxWriter(session)

    def _blocked(self, reason: BlockReason, **context) -> Blocked:
        self.logger.info(
            f"Attribution blocked: {reason.value}",
            extra={"reason": reason.value, **context},
        )
        return Blocked(reason)

    @transaction
    async def attribute_signup(
        self, referral_id: str, user_id: str
    ) -> Ok[Referral] | Blocked:
        """
        Bind a new user to the referral they clicked.

        Only a clicked, unexpired referral of another user's affiliate is
        bound; anything else leaves state unchanged.

        Args:
            referral_id: Opaque referral id from the click
            user_id: Host user who signed up

        Returns:
            Ok(referral) or Blocked(reason)
        """
        referral = await self.referrals.get_by_referral_id(referral_id)
        if not referral:
            return self._blocked(BlockReason.REFERRAL_NOT_FOUND)
        if referral.status != ReferralStatus.CLICKED:
            return self._blocked(
                BlockReason.REFERRAL_NOT_CLICKED, referral_pk=referral.id
            )

        now = self.clock()
        if referral.is_expired_at(now):
            return self._blocked(BlockReason.REFERRAL_EXPIRED, referral_pk=referral.id)

        affiliate = await self.affiliates.get_by_id(referral.affiliate_id)
        if affiliate.user_id == user_id:
            return self._blocked(
                BlockReason.SELF_REFERRAL, affiliate_id=affiliate.id
            )

        if await self.referrals.get_by_user_id(user_id):
            return self._blocked(BlockReason.USER_ALREADY_ATTRIBUTED)

        if not await self.referrals.bind_user(referral.id, user_id, now):
            return self._blocked(
                BlockReason.REFERRAL_NOT_CLICKED, referral_pk=referral.id
            )

        await self.affiliates.increment_stats(affiliate.id, total_signups=1)
        await self.analytics.record_event(
            affiliate.id, AnalyticsEventType.SIGNUP, {"referral_id": referral_id}
        )
        await self.refresh(referral)

        self.logger.info(
            "Signup attributed",
            extra={"affiliate_id": affiliate.id, "referral_pk": referral.id},
        )
        return Ok(referral)

    @transaction
    async def attribute_signup_by_code(
        self, affiliate_code: str, user_id: str
    ) -> Ok[Referral] | Blocked:
        """
        Attribute a signup from an affiliate code when no click was tracked.

        A user already bound to a referral keeps it and the call reports
        success.

        Args:
            affiliate_code: Code entered or carried by the user
            user_id: Host user who signed up

        Returns:
            Ok(referral) or Blocked(reason)
        """
        affiliate = await self.affiliates.get_by_code(normalize_code(affiliate_code))
        if not affiliate:
            return self._blocked(BlockReason.AFFILIATE_NOT_FOUND)
        if not affiliate.is_approved:
            return self._blocked(
                BlockReason.AFFILIATE_NOT_APPROVED, affiliate_id=affiliate.id
            )
        if affiliate.user_id == user_id:
            return self._blocked(BlockReason.SELF_REFERRAL, affiliate_id=affiliate.id)

        existing = await self.referrals.get_by_user_id(user_id)
        if existing:
            return Ok(existing, replayed=True)

        campaign = await self.campaigns.get_by_id(affiliate.campaign_id)
        if not campaign or not campaign.is_active:
            return self._blocked(
                BlockReason.CAMPAIGN_INACTIVE, affiliate_id=affiliate.id
            )

        now = self.clock()
        referral = await self.referrals.create(
            affiliate_id=affiliate.id,
            referral_id=str(uuid.uuid4()),
            landing_page=CODE_ATTRIBUTION_LANDING_PAGE,
            status=ReferralStatus.SIGNED_UP.value,
            user_id=user_id,
            clicked_at=now,
            signed_up_at=now,
            expires_at=now + timedelta(days=campaign.cookie_duration_days),
        )
        await self.affiliates.increment_stats(
            affiliate.id, total_clicks=1, total_signups=1
        )
        await self.analytics.record_event(
            affiliate.id,
            AnalyticsEventType.SIGNUP,
            {"referral_id": referral.referral_id, "source": "code"},
        )

        self.logger.info(
            "Signup attributed by code",
            extra={"affiliate_id": affiliate.id, "referral_pk": referral.id},
        )
        return Ok(referral)

    @transaction
    async def link_customer(
        self,
        customer_id: str,
        user_id: str | None = None,
        affiliate_code: str | None = None,
    ) -> Ok[Referral] | Blocked:
        """
        Bind a payment customer to the referral of the user who paid.

        Rules, in order:
        1. A customer already bound to a referral is never rebound.
        2. With user_id, the user's referral gets the customer unless its
           affiliate is the same user.
        3. A code without a user (guest checkout) attributes nothing.

        Args:
            customer_id: Payment provider customer id
            user_id: Host user who checked out
            affiliate_code: Code carried through checkout (ignored for binding)

        Returns:
            Ok(referral) or Blocked(reason)
        """
        existing = await self.referrals.get_by_customer_id(customer_id)
        if existing:
            if user_id and existing.user_id == user_id:
                return Ok(existing, replayed=True)
            return self._blocked(
                BlockReason.CUSTOMER_ALREADY_BOUND,
                customer=mask_customer_id(customer_id),
            )

        if not user_id:
            if affiliate_code:
                return self._blocked(
                    BlockReason.GUEST_CHECKOUT,
                    customer=mask_customer_id(customer_id),
                )
            return self._blocked(BlockReason.REFERRAL_NOT_FOUND)

        referral = await self.referrals.get_by_user_id(user_id)
        if not referral:
            return self._blocked(BlockReason.REFERRAL_NOT_FOUND)

        affiliate = await self.affiliates.get_by_id(referral.affiliate_id)
        if affiliate.user_id == user_id:
            return self._blocked(BlockReason.SELF_REFERRAL, affiliate_id=affiliate.id)
        if referral.customer_id is not None:
            return self._blocked(
                BlockReason.REFERRAL_HAS_CUSTOMER, referral_pk=referral.id
            )

        if not await self.referrals.bind_customer(referral.id, customer_id):
            return self._blocked(
                BlockReason.REFERRAL_HAS_CUSTOMER, referral_pk=referral.id
            )
        await self.refresh(referral)

        await self.outbox.add(
            LifecycleEventType.CUSTOMER_LINKED,
            CustomerLinkedData(
                customer_id=customer_id,
                affiliate_id=affiliate.id,
                user_id=user_id,
            ),
        )
        self.logger.info(
            "Customer linked",
            extra={
                "affiliate_id": affiliate.id,
                "referral_pk": referral.id,
                "customer": mask_customer_id(customer_id),
            },
        )
        return Ok(referral)
