"""Integration tests for signup and customer attribution."""

from sqlalchemy import func, select

from affiliates.models import OutboxEvent, Referral
from affiliates.services.affiliate_service import AffiliateService
from affiliates.services.referral.attribution import AttributionResolver
from affiliates.services.results import Blocked, BlockReason, Ok


async def count_referrals(session) -> int:
    return (await session.execute(select(func.count()).select_from(Referral))).scalar()


class TestAttributeSignup:
    """Tests for AttributionResolver.attribute_signup."""

    async def test_signup_binds_user(self, session, clock, affiliate, funnel):
        referral = await funnel.click()
        clock.advance(days=2)

        result = await AttributionResolver(session, clock).attribute_signup(
            referral.referral_id, "visitor-1"
        )

        assert isinstance(result, Ok)
        assert result.value.status == "signed_up"
        assert result.value.user_id == "visitor-1"
        assert result.value.signed_up_at == clock.now
        await session.refresh(affiliate)
        assert affiliate.total_signups == 1

    async def test_self_referral_blocked(self, session, clock, affiliate, funnel):
        referral = await funnel.click()

        result = await AttributionResolver(session, clock).attribute_signup(
            referral.referral_id, "aff-user"
        )

        assert result == Blocked(BlockReason.SELF_REFERRAL)
        await session.refresh(referral)
        assert referral.status == "clicked"
        assert referral.user_id is None

    async def test_expired_referral_blocked(self, session, clock, affiliate, funnel):
        referral = await funnel.click()
        clock.advance(days=31)

        result = await AttributionResolver(session, clock).attribute_signup(
            referral.referral_id, "visitor-1"
        )
        assert result == Blocked(BlockReason.REFERRAL_EXPIRED)

    async def test_user_attributed_once(self, session, clock, affiliate, funnel):
        await funnel.signup("visitor-1")
        second = await funnel.click()

        result = await AttributionResolver(session, clock).attribute_signup(
            second.referral_id, "visitor-1"
        )
        assert result == Blocked(BlockReason.USER_ALREADY_ATTRIBUTED)

    async def test_referral_used_once(self, session, clock, affiliate, funnel):
        referral = await funnel.click()
        resolver = AttributionResolver(session, clock)
        await resolver.attribute_signup(referral.referral_id, "visitor-1")

        result = await resolver.attribute_signup(referral.referral_id, "visitor-2")
        assert result == Blocked(BlockReason.REFERRAL_NOT_CLICKED)

    async def test_unknown_referral(self, session, clock, affiliate):
        result = await AttributionResolver(session, clock).attribute_signup(
            "missing", "visitor-1"
        )
        assert result == Blocked(BlockReason.REFERRAL_NOT_FOUND)


class TestAttributeSignupByCode:
    """Tests for AttributionResolver.attribute_signup_by_code."""

    async def test_creates_signed_up_referral(self, session, clock, affiliate):
        result = await AttributionResolver(session, clock).attribute_signup_by_code(
            "john20", "visitor-1"
        )

        assert isinstance(result, Ok)
        assert result.value.status == "signed_up"
        assert result.value.user_id == "visitor-1"
        await session.refresh(affiliate)
        assert affiliate.total_clicks == 1
        assert affiliate.total_signups == 1

    async def test_self_referral_blocked(self, session, clock, affiliate):
        result = await AttributionResolver(session, clock).attribute_signup_by_code(
            "JOHN20", "aff-user"
        )
        assert result == Blocked(BlockReason.SELF_REFERRAL)
        assert await count_referrals(session) == 0

    async def test_existing_attribution_kept(self, session, clock, affiliate, funnel):
        original = await funnel.signup("visitor-1")

        result = await AttributionResolver(session, clock).attribute_signup_by_code(
            "JOHN20", "visitor-1"
        )

        assert result.replayed
        assert result.value.id == original.id
        assert await count_referrals(session) == 1

    async def test_unapproved_affiliate(self, session, clock, campaign):
        await AffiliateService(session, clock).register(
            "pending-user", "p@example.com", custom_code="PENDING1"
        )
        result = await AttributionResolver(session, clock).attribute_signup_by_code(
            "PENDING1", "visitor-1"
        )
        assert result == Blocked(BlockReason.AFFILIATE_NOT_APPROVED)


class TestLinkCustomer:
    """Tests for AttributionResolver.link_customer."""

    async def test_customer_bound_to_user_referral(
        self, session, clock, affiliate, funnel
    ):
        referral = await funnel.signup("visitor-1")

        result = await AttributionResolver(session, clock).link_customer(
            "cus_123", "visitor-1"
        )

        assert isinstance(result, Ok)
        assert result.value.id == referral.id
        assert result.value.customer_id == "cus_123"

        events = (await session.execute(select(OutboxEvent))).scalars().all()
        assert "customer.linked" in [e.event_type for e in events]

    async def test_self_referral_customer_rejected(
        self, session, clock, affiliate, funnel
    ):
        referral = await funnel.click()
        referral.user_id = affiliate.user_id
        referral.status = "signed_up"
        await session.commit()

        result = await AttributionResolver(session, clock).link_customer(
            "cus_self", affiliate.user_id
        )

        assert result == Blocked(BlockReason.SELF_REFERRAL)
        await session.refresh(referral)
        assert referral.customer_id is None

    async def test_relink_same_user_is_replay(self, session, clock, affiliate, funnel):
        await funnel.customer("visitor-1", "cus_123")

        result = await AttributionResolver(session, clock).link_customer(
            "cus_123", "visitor-1"
        )
        assert isinstance(result, Ok)
        assert result.replayed

    async def test_customer_never_rebound(self, session, clock, affiliate, funnel):
        await funnel.customer("visitor-1", "cus_123")
        await funnel.signup("visitor-2")

        result = await AttributionResolver(session, clock).link_customer(
            "cus_123", "visitor-2"
        )
        assert result == Blocked(BlockReason.CUSTOMER_ALREADY_BOUND)

    async def test_referral_keeps_first_customer(self, session, clock, affiliate, funnel):
        await funnel.customer("visitor-1", "cus_123")

        result = await AttributionResolver(session, clock).link_customer(
            "cus_456", "visitor-1"
        )
        assert result == Blocked(BlockReason.REFERRAL_HAS_CUSTOMER)

    async def test_guest_checkout_with_code_refused(self, session, clock, affiliate):
        result = await AttributionResolver(session, clock).link_customer(
            "cus_123", None, "JOHN20"
        )
        assert result == Blocked(BlockReason.GUEST_CHECKOUT)
        assert await count_referrals(session) == 0

    async def test_user_without_referral(self, session, clock, affiliate):
        result = await AttributionResolver(session, clock).link_customer(
            "cus_123", "visitor-9"
        )
        assert result == Blocked(BlockReason.REFERRAL_NOT_FOUND)
