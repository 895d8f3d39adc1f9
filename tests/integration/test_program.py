"""Integration tests for the AffiliateProgram facade."""

import json
from decimal import Decimal

import pytest

from affiliates.program import AffiliateProgram
from affiliates.services.context import HostAuth, RequestContext
from affiliates.services.hooks import LifecycleHooks
from affiliates.services.schemas import ClickMetadata
from affiliates.services.webhook import build_signature_header
from affiliates.utils.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    NotFoundError,
)

ADMIN = RequestContext(user_id="admin-1", is_admin=True)
OWNER = RequestContext(user_id="aff-user")
VISITOR = RequestContext(user_id="visitor-1")


def host_auth() -> HostAuth:
    return HostAuth(
        lambda raw: raw.get("user"),
        lambda raw: raw.get("admin", False),
    )


@pytest.fixture
def received():
    return []


@pytest.fixture
def program(session_maker, clock, webhook_secret, received):
    async def record(data):
        received.append(data)

    hooks = LifecycleHooks(
        on_affiliate_registered=record,
        on_affiliate_approved=record,
        on_customer_linked=record,
        on_commission_created=record,
    )
    return AffiliateProgram(
        session_maker,
        host_auth(),
        base_url="https://example.com/",
        webhook_secret=webhook_secret,
        hooks=hooks,
        default_campaign={
            "commission_type": "percentage",
            "commission_value": Decimal("20"),
            "payout_term": "NET-30",
            "min_payout_cents": 5000,
        },
        clock=clock,
    )


@pytest.fixture
async def enrolled(program):
    """Default campaign plus an approved affiliate with code JOHN20."""
    await program.initialize()
    affiliate = await program.register(
        OWNER, "aff@example.com", custom_code="JOHN20", display_name="John"
    )
    return await program.approve_affiliate(ADMIN, affiliate.id)


def signed(clock, secret, event_type, data, event_id):
    body = json.dumps({"id": event_id, "type": event_type, "data": data}).encode()
    return body, build_signature_header(secret, int(clock.now.timestamp()), body)


class TestConfiguration:
    """Construction fails closed."""

    def test_auth_required(self, session_maker):
        with pytest.raises(ConfigurationError):
            AffiliateProgram(session_maker, None, "https://example.com", "secret")

    def test_admin_callback_required(self):
        with pytest.raises(ConfigurationError):
            HostAuth(lambda raw: "user-1", None)

    def test_base_url_required(self, session_maker):
        with pytest.raises(ConfigurationError):
            AffiliateProgram(session_maker, host_auth(), "", "secret")

    def test_webhook_secret_required(self, session_maker):
        with pytest.raises(ConfigurationError):
            AffiliateProgram(session_maker, host_auth(), "https://example.com", None)

    async def test_build_context(self, program):
        ctx = await program.build_context({"user": "u1", "admin": True})
        assert ctx == RequestContext(user_id="u1", is_admin=True)

        anonymous = await program.build_context({"admin": True})
        assert anonymous == RequestContext()


class TestAccessControl:
    """Role checks on authenticated and admin operations."""

    async def test_anonymous_cannot_register(self, program):
        with pytest.raises(AuthenticationError):
            await program.register(RequestContext(), "x@example.com")

    async def test_admin_operations_need_admin(self, program, enrolled):
        with pytest.raises(AuthorizationError):
            await program.suspend_affiliate(OWNER, enrolled.id)
        with pytest.raises(AuthorizationError):
            await program.list_affiliates(VISITOR)

    async def test_non_affiliate_has_no_payouts(self, program, enrolled):
        with pytest.raises(NotFoundError):
            await program.list_payouts(VISITOR)


class TestProgramFlow:
    """Click to payout through the facade."""

    async def test_initialize_is_idempotent(self, program):
        first = await program.initialize()
        second = await program.initialize()

        assert first.id == second.id
        assert first.is_default
        assert first.min_payout_cents == 5000

    async def test_generate_link(self, program, enrolled):
        link = await program.generate_link(OWNER, "/pricing", sub_id="yt")
        assert link == "https://example.com/pricing?ref=JOHN20&sub=yt"

    async def test_validate_code(self, program, enrolled):
        assert await program.validate_code("john20") == {
            "code": "JOHN20",
            "displayName": "John",
            "valid": True,
        }
        assert await program.validate_code("UNKNOWN") is None

    async def test_unknown_code_click(self, program, enrolled):
        assert await program.track_click("NOPE99") is None

    async def test_signup_falls_back_to_code(self, program, enrolled):
        assert await program.attribute_signup(
            VISITOR, referral_id="missing", affiliate_code="JOHN20"
        )
        assert not await program.attribute_signup(
            RequestContext(user_id="aff-user"), affiliate_code="JOHN20"
        )

    async def test_referee_discount(self, program, enrolled):
        campaign = await program.initialize()
        assert await program.get_referee_discount(affiliate_code="JOHN20") is None

        await program.update_campaign(
            ADMIN,
            campaign.id,
            referee_discount_type="percentage",
            referee_discount_value=10,
            referee_coupon_id="WELCOME10",
        )
        discount = await program.get_referee_discount(affiliate_code="JOHN20")

        assert discount.discount_value == Decimal("10")
        assert discount.coupon_id == "WELCOME10"
        assert discount.affiliate_display_name == "John"

    async def test_full_flow(
        self, program, enrolled, clock, webhook_secret, received
    ):
        referral_id = await program.track_click(
            "JOHN20", "/pricing", ClickMetadata(ip_address="203.0.113.7")
        )
        assert referral_id

        assert await program.attribute_signup(VISITOR, referral_id=referral_id)
        assert await program.link_customer(VISITOR, "cus_1")

        body, header = signed(
            clock,
            webhook_secret,
            "payment.succeeded",
            {
                "payment_id": "in_1",
                "customer_id": "cus_1",
                "amount_cents": 10000,
                "charge_id": "ch_1",
            },
            "evt_1",
        )
        assert await program.handle_webhook(body, header) == {"received": True}

        portal = await program.get_portal_data(OWNER)
        assert portal.pending_payout_cents == 2000
        assert portal.affiliate.total_conversions == 1
        commission = portal.recent_commissions[0]

        await program.approve_commission(ADMIN, commission.id)
        clock.advance(days=31)
        payout = await program.create_payout(ADMIN, enrolled.id)
        assert payout.amount_cents == 2000
        completed = await program.complete_payout(ADMIN, payout.id)
        assert completed.status == "completed"

        own = await program.list_payouts(OWNER)
        assert [p.id for p in own.items] == [payout.id]

        dashboard = await program.get_admin_dashboard(ADMIN)
        assert dashboard.active_affiliates == 1
        assert dashboard.total_clicks == 1
        assert dashboard.paid_commissions_cents == 2000

        funnel = await program.get_conversion_funnel(ADMIN, enrolled.id)
        assert funnel.overall_conversion_rate == 100.0

        event_types = [type(data).__name__ for data in received]
        assert event_types == [
            "AffiliateEventData",
            "AffiliateEventData",
            "CustomerLinkedData",
            "CommissionCreatedData",
        ]

    async def test_expire_referrals(self, program, enrolled, clock):
        await program.track_click("JOHN20")
        clock.advance(days=31)

        assert await program.expire_referrals() == 1
        assert await program.expire_referrals() == 0
