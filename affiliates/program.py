"""
Affiliate program facade.

Single entry point for the host application. Every operation opens its own
session and runs as one unit of work; lifecycle hooks run after commit.

Operations fall in three groups:
- public: no caller identity needed
- authenticated: take a RequestContext with a user
- admin: take a RequestContext with the admin role

Fraud and eligibility refusals come back as None/False; why an attempt was
refused only appears in the log.
"""

from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from affiliates.config.constants import WEBHOOK_TOLERANCE_SECONDS
from affiliates.config.settings import Settings, get_settings
from affiliates.models.affiliate import Affiliate
from affiliates.models.campaign import Campaign, CommissionTier, ProductCommission
from affiliates.models.commission import Commission
from affiliates.models.payout import Payout
from affiliates.models.referral import Referral
from affiliates.repositories.commission_repository import CommissionRepository
from affiliates.services.affiliate_service import AffiliateService
from affiliates.services.analytics_service import AnalyticsService
from affiliates.services.campaign_service import CampaignService
from affiliates.services.commission.ledger import CommissionLedger
from affiliates.services.context import (
    AdminCallback,
    AuthCallback,
    HostAuth,
    RequestContext,
)
from affiliates.services.hooks import LifecycleHooks
from affiliates.services.interfaces import AbstractClickVelocityGuard
from affiliates.services.outbox import DispatchStats, OutboxDispatcher
from affiliates.services.payout.aggregator import PayoutAggregator
from affiliates.services.referral.attribution import AttributionResolver
from affiliates.services.referral.query_manager import ReferralQueryManager
from affiliates.services.referral.tracker import ReferralTracker
from affiliates.services.referral.velocity import RedisClickVelocityGuard
from affiliates.services.results import Ok, value_or_none
from affiliates.services.schemas import (
    AdminDashboard,
    ClickMetadata,
    ConversionFunnel,
    PortalData,
    RefereeDiscount,
)
from affiliates.services.webhook.processor import WebhookProcessor
from affiliates.utils.datetime_utils import Clock, utc_now
from affiliates.utils.exceptions import ConfigurationError, NotFoundError
from affiliates.utils.links import build_referral_link
from affiliates.utils.pagination import Page
from affiliates.utils.redis_utils import get_redis_client

DEFAULT_CAMPAIGN_NAME = "Default"
DEFAULT_CAMPAIGN_SLUG = "default"


class AffiliateProgram:
    """Public, authenticated and admin surface of the engine."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        host_auth: HostAuth | None,
        base_url: str | None,
        webhook_secret: str | None,
        hooks: LifecycleHooks | None = None,
        velocity_guard: AbstractClickVelocityGuard | None = None,
        max_clicks_per_ip_per_hour: int | None = None,
        ip_hash_salt: str = "",
        webhook_tolerance_seconds: int = WEBHOOK_TOLERANCE_SECONDS,
        expire_batch_size: int | None = None,
        outbox_batch_size: int = 100,
        outbox_max_attempts: int = 5,
        default_campaign: dict[str, Any] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """
        Initialize program.

        Args:
            session_maker: Async session factory
            host_auth: Host auth callbacks, both required
            base_url: Site URL referral links point to
            webhook_secret: Shared secret of the payment webhook
            hooks: Lifecycle hook callbacks
            velocity_guard: Click limiter shared across sessions (Redis);
                a database guard per session when omitted
            max_clicks_per_ip_per_hour: Click limit when the campaign sets none
            ip_hash_salt: Salt for hashing client addresses
            webhook_tolerance_seconds: Accepted webhook signature age
            expire_batch_size: Referrals expired per transaction
            outbox_batch_size: Events delivered per dispatch pass
            outbox_max_attempts: Delivery attempts per event
            default_campaign: Campaign fields used by initialize()
            clock: Current time source

        Raises:
            ConfigurationError: If auth, base URL or webhook secret is missing
        """
        if host_auth is None:
            raise ConfigurationError("Host auth callbacks are required")
        if not base_url:
            raise ConfigurationError("A base URL is required for referral links")
        if not webhook_secret:
            raise ConfigurationError("A webhook secret is required")

        self.session_maker = session_maker
        self.host_auth = host_auth
        self.base_url = base_url.rstrip("/")
        self.webhook_secret = webhook_secret
        self.velocity_guard = velocity_guard
        self.ip_hash_salt = ip_hash_salt
        self.webhook_tolerance_seconds = webhook_tolerance_seconds
        self.default_campaign = dict(default_campaign or {})
        self.clock = clock
        self._tracker_options: dict[str, Any] = {}
        if max_clicks_per_ip_per_hour is not None:
            self._tracker_options["max_clicks_per_ip_per_hour"] = max_clicks_per_ip_per_hour
        if expire_batch_size is not None:
            self._tracker_options["expire_batch_size"] = expire_batch_size

        self.dispatcher = OutboxDispatcher(
            session_maker,
            hooks,
            batch_size=outbox_batch_size,
            max_attempts=outbox_max_attempts,
            clock=clock,
        )
        self.logger = logger.bind(service=self.__class__.__name__)

    @classmethod
    def from_settings(
        cls,
        session_maker: async_sessionmaker[AsyncSession],
        auth: AuthCallback | None,
        is_admin: AdminCallback | None,
        hooks: LifecycleHooks | None = None,
        settings: Settings | None = None,
        clock: Clock = utc_now,
    ) -> "AffiliateProgram":
        """
        Build a program from environment settings.

        Raises:
            ConfigurationError: If a callback is missing
        """
        settings = settings or get_settings()
        velocity_guard = None
        if settings.click_velocity_backend == "redis":
            velocity_guard = RedisClickVelocityGuard(get_redis_client(settings))

        return cls(
            session_maker,
            HostAuth(auth, is_admin),
            base_url=settings.base_url,
            webhook_secret=settings.webhook_secret,
            hooks=hooks,
            velocity_guard=velocity_guard,
            max_clicks_per_ip_per_hour=settings.max_clicks_per_ip_per_hour,
            ip_hash_salt=settings.ip_hash_salt,
            webhook_tolerance_seconds=settings.webhook_tolerance_seconds,
            expire_batch_size=settings.expire_batch_size,
            outbox_batch_size=settings.outbox_batch_size,
            outbox_max_attempts=settings.outbox_max_attempts,
            default_campaign={
                "commission_type": settings.default_commission_type,
                "commission_value": Decimal(str(settings.default_commission_value)),
                "payout_term": settings.default_payout_term,
                "cookie_duration_days": settings.default_cookie_duration_days,
                "min_payout_cents": settings.default_min_payout_cents,
            },
            clock=clock,
        )

    async def build_context(self, raw_ctx: Any) -> RequestContext:
        """Evaluate host auth callbacks once for a request."""
        return await self.host_auth.build_context(raw_ctx)

    # ------------------------------------------------------------------
    # Setup and background operations
    # ------------------------------------------------------------------

    async def initialize(self) -> Campaign:
        """Create the default campaign unless one exists."""
        async with self.session_maker() as session:
            service = CampaignService(session, self.clock)
            campaign = await service.get_default()
            if campaign:
                return campaign
            campaign = await service.create_campaign(
                name=DEFAULT_CAMPAIGN_NAME,
                slug=DEFAULT_CAMPAIGN_SLUG,
                is_default=True,
                **self.default_campaign,
            )
            self.logger.info(
                "Default campaign created", extra={"campaign_id": campaign.id}
            )
            return campaign

    async def expire_referrals(self) -> int:
        """Expire clicked referrals past their window."""
        async with self.session_maker() as session:
            return await self._tracker(session).expire_referrals()

    async def process_due_payouts(self) -> list[Payout]:
        """Create payouts for every affiliate due for one."""
        async with self.session_maker() as session:
            return await PayoutAggregator(
                session, clock=self.clock
            ).process_due_payouts()

    async def dispatch_outbox(self) -> DispatchStats:
        """Deliver pending lifecycle events to hooks."""
        return await self.dispatcher.dispatch_pending()

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    async def track_click(
        self,
        affiliate_code: str,
        landing_page: str = "/",
        metadata: ClickMetadata | None = None,
    ) -> str | None:
        """
        Record a click through a referral link.

        Returns:
            Referral id to store in the visitor's cookie, or None
        """
        async with self.session_maker() as session:
            result = await self._tracker(session).track_click(
                affiliate_code, landing_page, metadata
            )
        referral = value_or_none(result)
        return referral.referral_id if referral else None

    async def validate_code(self, code: str) -> dict[str, Any] | None:
        """Public code check: {code, displayName, valid} or None."""
        async with self.session_maker() as session:
            validation = await AffiliateService(session, self.clock).validate_code(code)
        return validation.to_dict() if validation else None

    async def get_referee_discount(
        self,
        referral_id: str | None = None,
        user_id: str | None = None,
        affiliate_code: str | None = None,
    ) -> RefereeDiscount | None:
        """Discount a referred customer is entitled to, if any."""
        async with self.session_maker() as session:
            result = await ReferralQueryManager(
                session, self.clock
            ).get_referee_discount(referral_id, user_id, affiliate_code)
        return value_or_none(result)

    async def handle_webhook(
        self, raw_body: bytes, signature_header: str | None
    ) -> dict[str, bool]:
        """
        Process a signed payment webhook.

        Raises:
            WebhookSignatureError: If signature is missing or invalid
            WebhookPayloadError: If body is malformed (sender should retry)
        """
        async with self.session_maker() as session:
            processor = WebhookProcessor(
                session,
                self.webhook_secret,
                self.webhook_tolerance_seconds,
                tracker=self._tracker(session),
                clock=self.clock,
            )
            await processor.process(raw_body, signature_header)
        await self._dispatch_hooks()
        return {"received": True}

    # ------------------------------------------------------------------
    # Authenticated
    # ------------------------------------------------------------------

    async def register(
        self,
        ctx: RequestContext,
        email: str,
        campaign_id: int | None = None,
        custom_code: str | None = None,
        display_name: str | None = None,
        website: str | None = None,
        payout_email: str | None = None,
    ) -> Affiliate:
        """Register the caller as a pending affiliate."""
        user_id = ctx.require_user()
        async with self.session_maker() as session:
            affiliate = await AffiliateService(session, self.clock).register(
                user_id,
                email,
                campaign_id=campaign_id,
                custom_code=custom_code,
                display_name=display_name,
                website=website,
                payout_email=payout_email,
            )
        await self._dispatch_hooks()
        return affiliate

    async def get_affiliate(self, ctx: RequestContext) -> Affiliate | None:
        """The caller's affiliate, if registered."""
        user_id = ctx.require_user()
        async with self.session_maker() as session:
            return await AffiliateService(session, self.clock).get_by_user(user_id)

    async def update_profile(self, ctx: RequestContext, **changes: Any) -> Affiliate:
        """Update the caller's profile fields."""
        async with self.session_maker() as session:
            affiliate = await self._own_affiliate(session, ctx)
            return await AffiliateService(session, self.clock).update_profile(
                affiliate.id, **changes
            )

    async def get_portal_data(self, ctx: RequestContext) -> PortalData | None:
        """Portal overview of the caller's affiliate."""
        user_id = ctx.require_user()
        async with self.session_maker() as session:
            return await AnalyticsService(session, self.clock).get_portal_data(user_id)

    async def list_commissions(
        self,
        ctx: RequestContext,
        status: str | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[Commission]:
        """Commissions of the caller's affiliate, newest first."""
        async with self.session_maker() as session:
            affiliate = await self._own_affiliate(session, ctx)
            return await CommissionRepository(session).list_by_affiliate(
                affiliate.id, status=status, limit=limit, cursor=cursor
            )

    async def list_referrals(
        self,
        ctx: RequestContext,
        status: str | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[Referral]:
        """Referrals of the caller's affiliate, newest first."""
        async with self.session_maker() as session:
            affiliate = await self._own_affiliate(session, ctx)
            return await ReferralQueryManager(session, self.clock).list_by_affiliate(
                affiliate.id, status=status, limit=limit, cursor=cursor
            )

    async def list_payouts(
        self,
        ctx: RequestContext,
        affiliate_id: int | None = None,
        status: str | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[Payout]:
        """
        List payouts newest first.

        Admins see any affiliate (or all); other callers only their own.
        """
        async with self.session_maker() as session:
            if not ctx.is_admin:
                affiliate_id = (await self._own_affiliate(session, ctx)).id
            return await PayoutAggregator(session, clock=self.clock).list_payouts(
                affiliate_id=affiliate_id, status=status, limit=limit, cursor=cursor
            )

    async def generate_link(
        self, ctx: RequestContext, path: str = "/", sub_id: str | None = None
    ) -> str:
        """Referral link of the caller's affiliate."""
        async with self.session_maker() as session:
            affiliate = await self._own_affiliate(session, ctx)
        return build_referral_link(self.base_url, affiliate.code, path, sub_id)

    async def attribute_signup(
        self,
        ctx: RequestContext,
        referral_id: str | None = None,
        affiliate_code: str | None = None,
    ) -> bool:
        """
        Attribute the newly signed-up caller to a referral.

        The referral id from a click wins; the code is used when no click
        was tracked.

        Returns:
            True if the caller is attributed
        """
        user_id = ctx.require_user()
        async with self.session_maker() as session:
            resolver = AttributionResolver(session, self.clock)
            if referral_id:
                result = await resolver.attribute_signup(referral_id, user_id)
                if isinstance(result, Ok) or not affiliate_code:
                    return isinstance(result, Ok)
            if not affiliate_code:
                return False
            result = await resolver.attribute_signup_by_code(affiliate_code, user_id)
        return isinstance(result, Ok)

    async def link_customer(
        self,
        ctx: RequestContext,
        customer_id: str,
        affiliate_code: str | None = None,
    ) -> bool:
        """Bind the caller's payment customer to their referral."""
        async with self.session_maker() as session:
            result = await AttributionResolver(session, self.clock).link_customer(
                customer_id, ctx.user_id, affiliate_code
            )
        await self._dispatch_hooks()
        return isinstance(result, Ok)

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def approve_affiliate(self, ctx: RequestContext, affiliate_id: int) -> Affiliate:
        ctx.require_admin()
        return await self._affiliate_transition("approve", affiliate_id)

    async def reject_affiliate(self, ctx: RequestContext, affiliate_id: int) -> Affiliate:
        ctx.require_admin()
        return await self._affiliate_transition("reject", affiliate_id)

    async def suspend_affiliate(self, ctx: RequestContext, affiliate_id: int) -> Affiliate:
        ctx.require_admin()
        return await self._affiliate_transition("suspend", affiliate_id)

    async def reactivate_affiliate(
        self, ctx: RequestContext, affiliate_id: int
    ) -> Affiliate:
        ctx.require_admin()
        return await self._affiliate_transition("reactivate", affiliate_id)

    async def set_custom_commission(
        self,
        ctx: RequestContext,
        affiliate_id: int,
        commission_type: str | None,
        commission_value: Decimal | int | float | None,
    ) -> Affiliate:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await AffiliateService(session, self.clock).set_custom_commission(
                affiliate_id, commission_type, commission_value
            )

    async def list_affiliates(
        self,
        ctx: RequestContext,
        status: str | None = None,
        campaign_id: int | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[Affiliate]:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await AffiliateService(session, self.clock).list_affiliates(
                status=status, campaign_id=campaign_id, limit=limit, cursor=cursor
            )

    async def create_campaign(self, ctx: RequestContext, **fields: Any) -> Campaign:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await CampaignService(session, self.clock).create_campaign(**fields)

    async def update_campaign(
        self, ctx: RequestContext, campaign_id: int, **changes: Any
    ) -> Campaign:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await CampaignService(session, self.clock).update_campaign(
                campaign_id, **changes
            )

    async def set_default_campaign(
        self, ctx: RequestContext, campaign_id: int
    ) -> Campaign:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await CampaignService(session, self.clock).set_default(campaign_id)

    async def archive_campaign(self, ctx: RequestContext, campaign_id: int) -> Campaign:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await CampaignService(session, self.clock).archive(campaign_id)

    async def list_campaigns(
        self, ctx: RequestContext, active_only: bool = False
    ) -> list[Campaign]:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await CampaignService(session, self.clock).list_campaigns(active_only)

    async def add_tier(
        self,
        ctx: RequestContext,
        campaign_id: int,
        min_referrals: int,
        commission_type: str,
        commission_value: Decimal | int | float,
    ) -> CommissionTier:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await CampaignService(session, self.clock).add_tier(
                campaign_id, min_referrals, commission_type, commission_value
            )

    async def set_product_commission(
        self,
        ctx: RequestContext,
        campaign_id: int,
        product_id: str,
        commission_type: str,
        commission_value: Decimal | int | float,
    ) -> ProductCommission:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await CampaignService(session, self.clock).set_product_commission(
                campaign_id, product_id, commission_type, commission_value
            )

    async def approve_commission(
        self, ctx: RequestContext, commission_id: int
    ) -> Commission:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await CommissionLedger(session, clock=self.clock).approve(
                commission_id
            )

    async def create_payout(
        self,
        ctx: RequestContext,
        affiliate_id: int,
        commission_ids: list[int] | None = None,
    ) -> Payout:
        """Batch the given (or all due) commissions of an affiliate."""
        ctx.require_admin()
        async with self.session_maker() as session:
            aggregator = PayoutAggregator(session, clock=self.clock)
            if commission_ids is None:
                due = await aggregator.get_due_commissions(affiliate_id)
                commission_ids = [c.id for c in due]
            return await aggregator.create_payout(affiliate_id, commission_ids)

    async def complete_payout(self, ctx: RequestContext, payout_id: int) -> Payout:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await PayoutAggregator(session, clock=self.clock).complete_payout(
                payout_id
            )

    async def cancel_payout(
        self, ctx: RequestContext, payout_id: int, notes: str | None = None
    ) -> Payout:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await PayoutAggregator(session, clock=self.clock).cancel_payout(
                payout_id, notes
            )

    async def recompute_stats(
        self, ctx: RequestContext, affiliate_id: int
    ) -> dict[str, int]:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await CommissionLedger(session, clock=self.clock).recompute_stats(
                affiliate_id
            )

    async def get_admin_dashboard(self, ctx: RequestContext) -> AdminDashboard:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await AnalyticsService(session, self.clock).get_admin_dashboard()

    async def get_top_affiliates(
        self, ctx: RequestContext, sort_by: str = "conversions", limit: int = 10
    ) -> list[Affiliate]:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await AnalyticsService(session, self.clock).get_top_affiliates(
                sort_by, limit
            )

    async def get_conversion_funnel(
        self, ctx: RequestContext, affiliate_id: int | None = None
    ) -> ConversionFunnel:
        ctx.require_admin()
        async with self.session_maker() as session:
            return await AnalyticsService(session, self.clock).get_conversion_funnel(
                affiliate_id
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _tracker(self, session: AsyncSession) -> ReferralTracker:
        return ReferralTracker(
            session,
            velocity_guard=self.velocity_guard,
            ip_hash_salt=self.ip_hash_salt,
            clock=self.clock,
            **self._tracker_options,
        )

    async def _own_affiliate(
        self, session: AsyncSession, ctx: RequestContext
    ) -> Affiliate:
        user_id = ctx.require_user()
        affiliate = await AffiliateService(session, self.clock).get_by_user(user_id)
        if not affiliate:
            raise NotFoundError("Caller is not an affiliate")
        return affiliate

    async def _affiliate_transition(self, action: str, affiliate_id: int) -> Affiliate:
        async with self.session_maker() as session:
            service = AffiliateService(session, self.clock)
            affiliate = await getattr(service, action)(affiliate_id)
        await self._dispatch_hooks()
        return affiliate

    async def _dispatch_hooks(self) -> None:
        # Undelivered events stay pending for the scheduled dispatch job
        try:
            await self.dispatcher.dispatch_pending()
        except SQLAlchemyError as e:
            self.logger.warning(
                "Outbox dispatch deferred",
                extra={"error": str(e)},
            )
