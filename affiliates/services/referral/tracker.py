"""
Referral tracker.

Records clicks on affiliate links and expires referrals whose attribution
window lapsed before signup.
"""

import uuid
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.config.constants import DEFAULT_MAX_CLICKS_PER_IP_PER_HOUR
from affiliates.models.enums import AnalyticsEventType, ReferralStatus
from affiliates.models.referral import Referral
from affiliates.repositories.affiliate_repository import AffiliateRepository
from affiliates.repositories.campaign_repository import CampaignRepository
from affiliates.repositories.referral_repository import ReferralRepository
from affiliates.services.analytics_service import AnalyticsService
from affiliates.services.base_service import BaseService, log_operation, transaction
from affiliates.services.interfaces import (
    AbstractClickVelocityGuard,
    AbstractReferralTracker,
)
from affiliates.services.referral.velocity import DatabaseClickVelocityGuard
from affiliates.services.results import Blocked, BlockReason, Ok
from affiliates.services.schemas import ClickMetadata
from affiliates.utils.datetime_utils import Clock, utc_now
from affiliates.utils.security import hash_ip, mask_ip
from affiliates.validators.common import normalize_code

DEFAULT_EXPIRE_BATCH_SIZE = 500


class ReferralTracker(BaseService, AbstractReferralTracker):
    """Click tracking and referral expiry."""

    def __init__(
        self,
        session: AsyncSession,
        velocity_guard: AbstractClickVelocityGuard | None = None,
        max_clicks_per_ip_per_hour: int = DEFAULT_MAX_CLICKS_PER_IP_PER_HOUR,
        ip_hash_salt: str = "",
        expire_batch_size: int = DEFAULT_EXPIRE_BATCH_SIZE,
        clock: Clock = utc_now,
    ) -> None:
        """
        Initialize tracker.

        Args:
            session: Async database session
            velocity_guard: Click limiter, database-backed by default
            max_clicks_per_ip_per_hour: Limit when the campaign sets none
            ip_hash_salt: Salt for hashing client addresses
            expire_batch_size: Referrals expired per transaction
            clock: Current time source
        """
        super().__init__(session, clock)
        self.affiliates = AffiliateRepository(session)
        self.campaigns = CampaignRepository(session)
        self.referrals = ReferralRepository(session)
        self.analytics = AnalyticsService(session, clock)
        self.velocity_guard = velocity_guard or DatabaseClickVelocityGuard(session)
        self.max_clicks_per_ip_per_hour = max_clicks_per_ip_per_hour
        self.ip_hash_salt = ip_hash_salt
        self.expire_batch_size = expire_batch_size

    @transaction
    async def track_click(
        self,
        affiliate_code: str,
        landing_page: str,
        metadata: ClickMetadata | None = None,
    ) -> Ok[Referral] | Blocked:
        """
        Record a click through an affiliate link.

        Args:
            affiliate_code: Code from the link (case-insensitive)
            landing_page: Path the visitor landed on
            metadata: Request details

        Returns:
            Ok(referral) or Blocked(reason)
        """
        metadata = metadata or ClickMetadata()
        code = normalize_code(affiliate_code)

        affiliate = await self.affiliates.get_by_code(code)
        if not affiliate:
            return Blocked(BlockReason.AFFILIATE_NOT_FOUND)
        if not affiliate.is_approved:
            return Blocked(BlockReason.AFFILIATE_NOT_APPROVED)

        campaign = await self.campaigns.get_by_id(affiliate.campaign_id)
        if not campaign or not campaign.is_active:
            return Blocked(BlockReason.CAMPAIGN_INACTIVE)

        now = self.clock()
        ip_hash = None
        if metadata.ip_address:
            ip_hash = hash_ip(metadata.ip_address, self.ip_hash_salt)
            limit = campaign.max_clicks_per_ip_per_hour or self.max_clicks_per_ip_per_hour
            if not await self.velocity_guard.allow(ip_hash, limit, now):
                self.logger.warning(
                    "Click rejected: velocity limit exceeded",
                    extra={
                        "affiliate_id": affiliate.id,
                        "ip": mask_ip(metadata.ip_address),
                        "limit": limit,
                        "reason": BlockReason.VELOCITY_EXCEEDED.value,
                    },
                )
                return Blocked(BlockReason.VELOCITY_EXCEEDED)

        referral = await self.referrals.create(
            affiliate_id=affiliate.id,
            referral_id=str(uuid.uuid4()),
            landing_page=landing_page or "/",
            utm_source=metadata.utm_source,
            utm_medium=metadata.utm_medium,
            utm_campaign=metadata.utm_campaign,
            sub_id=metadata.sub_id,
            device_type=metadata.device_type,
            country=metadata.country,
            ip_hash=ip_hash,
            status=ReferralStatus.CLICKED.value,
            clicked_at=now,
            expires_at=now + timedelta(days=campaign.cookie_duration_days),
        )
        await self.affiliates.increment_stats(affiliate.id, total_clicks=1)
        await self.analytics.record_event(
            affiliate.id,
            AnalyticsEventType.CLICK,
            {"referral_id": referral.referral_id, "landing_page": referral.landing_page},
        )

        self.logger.info(
            "Click tracked",
            extra={"affiliate_id": affiliate.id, "referral_id": referral.referral_id},
        )
        return Ok(referral)

    @log_operation
    async def expire_referrals(self, batch_size: int | None = None) -> int:
        """
        Expire clicked referrals past their window.

        Each batch commits on its own. Running the sweep again is a no-op
        for referrals already expired, signed up or converted.

        Args:
            batch_size: Referrals per transaction

        Returns:
            Number of referrals expired
        """
        batch_size = batch_size or self.expire_batch_size
        now = self.clock()
        total = 0
        while True:
            selected, expired = await self._expire_batch(now, batch_size)
            total += expired
            if selected < batch_size:
                break

        if total:
            self.logger.info("Referrals expired", extra={"count": total})
        return total

    @transaction
    async def _expire_batch(self, now, batch_size: int) -> tuple[int, int]:
        ids = await self.referrals.find_expired_ids(now, batch_size)
        expired = await self.referrals.expire(ids, now)
        return len(ids), expired

    @transaction
    async def convert_referral(self, referral: Referral) -> bool:
        """
        Mark referral converted and count the conversion once.

        Args:
            referral: Referral that produced a commission

        Returns:
            True on the first conversion, False if already converted
        """
        converted = await self.referrals.mark_converted(referral.id, self.clock())
        if not converted:
            return False
        await self.affiliates.increment_stats(
            referral.affiliate_id, total_conversions=1
        )
        await self.refresh(referral)
        self.logger.info(
            "Referral converted",
            extra={"referral_pk": referral.id, "affiliate_id": referral.affiliate_id},
        )
        return True
