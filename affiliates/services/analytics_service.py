"""
Analytics service.

Append-only event log plus read models for the portal and admin dashboard.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.config.constants import RECENT_COMMISSIONS_LIMIT
from affiliates.models.analytics_event import AnalyticsEvent
from affiliates.models.enums import AffiliateStatus, AnalyticsEventType
from affiliates.repositories.affiliate_repository import (
    TOP_AFFILIATE_SORT_COLUMNS,
    AffiliateRepository,
)
from affiliates.repositories.analytics_event_repository import (
    AnalyticsEventRepository,
)
from affiliates.repositories.campaign_repository import CampaignRepository
from affiliates.repositories.commission_repository import CommissionRepository
from affiliates.repositories.payout_repository import PayoutRepository
from affiliates.services.base_service import BaseService
from affiliates.services.schemas import AdminDashboard, ConversionFunnel, PortalData
from affiliates.utils.datetime_utils import Clock, utc_now
from affiliates.utils.exceptions import NotFoundError


def _rate(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator * 100, 2)


class AnalyticsService(BaseService):
    """Analytics event log and aggregate read models."""

    def __init__(self, session: AsyncSession, clock: Clock = utc_now) -> None:
        super().__init__(session, clock)
        self.events = AnalyticsEventRepository(session)
        self.affiliates = AffiliateRepository(session)
        self.campaigns = CampaignRepository(session)
        self.commissions = CommissionRepository(session)
        self.payouts = PayoutRepository(session)

    async def record_event(
        self,
        affiliate_id: int,
        event_type: AnalyticsEventType | str,
        metadata: dict[str, Any] | None = None,
    ) -> AnalyticsEvent:
        """
        Append an event inside the caller's transaction.

        Args:
            affiliate_id: Affiliate the event belongs to
            event_type: click, signup, conversion, refund or payout
            metadata: Free-form details

        Returns:
            Created event
        """
        return await self.events.create(
            affiliate_id=affiliate_id,
            event_type=AnalyticsEventType(event_type).value,
            event_metadata=metadata,
            occurred_at=self.clock(),
        )

    async def get_recent_events(
        self,
        affiliate_id: int,
        event_type: str | None = None,
        limit: int = 50,
    ) -> list[AnalyticsEvent]:
        """Recent events of an affiliate, newest first."""
        return await self.events.get_recent(affiliate_id, event_type, limit)

    async def get_portal_data(self, user_id: str) -> PortalData | None:
        """
        Collect the portal view of the affiliate owned by user.

        Returns:
            Portal data or None if the user is not an affiliate
        """
        affiliate = await self.affiliates.get_by_user_id(user_id)
        if not affiliate:
            return None
        campaign = await self.campaigns.get_by_id(affiliate.campaign_id)
        if not campaign:
            return None

        recent = await self.commissions.get_recent(
            affiliate.id, RECENT_COMMISSIONS_LIMIT
        )
        unpaid_cents, unpaid_count = await self.commissions.sum_unpaid(affiliate.id)

        return PortalData(
            affiliate=affiliate,
            campaign=campaign,
            recent_commissions=recent,
            pending_payout_cents=unpaid_cents,
            pending_payout_count=unpaid_count,
        )

    async def get_admin_dashboard(self) -> AdminDashboard:
        """Program-wide totals."""
        by_status = await self.affiliates.count_by_status()
        totals = await self.affiliates.sum_stats()
        pending_payouts_cents, pending_payouts_count = await self.payouts.sum_pending()
        active_campaigns = len(await self.campaigns.list_campaigns(active_only=True))

        return AdminDashboard(
            total_affiliates=sum(by_status.values()),
            pending_approvals=by_status[AffiliateStatus.PENDING],
            active_affiliates=by_status[AffiliateStatus.APPROVED],
            total_clicks=totals["total_clicks"],
            total_signups=totals["total_signups"],
            total_conversions=totals["total_conversions"],
            total_revenue_cents=totals["total_revenue_cents"],
            total_commissions_cents=totals["total_commissions_cents"],
            pending_commissions_cents=totals["pending_commissions_cents"],
            paid_commissions_cents=totals["paid_commissions_cents"],
            pending_payouts_cents=pending_payouts_cents,
            pending_payouts_count=pending_payouts_count,
            active_campaigns=active_campaigns,
        )

    async def get_top_affiliates(
        self, sort_by: str = "conversions", limit: int = 10
    ) -> list:
        """
        Approved affiliates ranked by a stat.

        Args:
            sort_by: conversions, revenue or commissions
            limit: Max number of results

        Raises:
            ValueError: If sort_by is unknown
        """
        if sort_by not in TOP_AFFILIATE_SORT_COLUMNS:
            raise ValueError(f"Unknown sort key: {sort_by}")
        return await self.affiliates.get_top(sort_by, limit)

    async def get_conversion_funnel(
        self, affiliate_id: int | None = None
    ) -> ConversionFunnel:
        """
        Funnel rates for one affiliate or the whole program.

        Raises:
            NotFoundError: If affiliate does not exist
        """
        if affiliate_id is not None:
            affiliate = await self.affiliates.get_by_id(affiliate_id, fresh=True)
            if not affiliate:
                raise NotFoundError(f"Affiliate {affiliate_id} not found")
            clicks = affiliate.total_clicks
            signups = affiliate.total_signups
            conversions = affiliate.total_conversions
        else:
            totals = await self.affiliates.sum_stats()
            clicks = totals["total_clicks"]
            signups = totals["total_signups"]
            conversions = totals["total_conversions"]

        return ConversionFunnel(
            clicks=clicks,
            signups=signups,
            conversions=conversions,
            click_to_signup_rate=_rate(signups, clicks),
            signup_to_conversion_rate=_rate(conversions, signups),
            overall_conversion_rate=_rate(conversions, clicks),
        )
