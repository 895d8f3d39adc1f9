"""Integration tests for affiliate and campaign management."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from affiliates.models import OutboxEvent
from affiliates.services.affiliate_service import AffiliateService
from affiliates.services.campaign_service import CampaignService
from affiliates.services.hooks import AffiliateEventData, LifecycleHooks
from affiliates.services.outbox import OutboxDispatcher
from affiliates.utils.exceptions import DuplicateError, InvalidStateError, NotFoundError


@pytest.fixture
def affiliates(session, clock):
    return AffiliateService(session, clock)


@pytest.fixture
def campaigns(session, clock):
    return CampaignService(session, clock)


async def outbox_types(session) -> list[str]:
    stmt = select(OutboxEvent.event_type).order_by(OutboxEvent.id)
    return list((await session.execute(stmt)).scalars().all())


class TestRegistration:
    """Tests for AffiliateService.register."""

    async def test_register_joins_default_campaign(self, affiliates, campaign):
        affiliate = await affiliates.register("user-1", "u1@example.com")

        assert affiliate.status == "pending"
        assert affiliate.campaign_id == campaign.id
        assert affiliate.payout_email == "u1@example.com"
        assert len(affiliate.code) == 8

    async def test_custom_code_normalized(self, affiliates, campaign):
        affiliate = await affiliates.register(
            "user-1", "u1@example.com", custom_code=" jane_20 "
        )
        assert affiliate.code == "JANE_20"

    async def test_user_registers_once(self, affiliates, campaign):
        await affiliates.register("user-1", "u1@example.com")

        with pytest.raises(DuplicateError):
            await affiliates.register("user-1", "other@example.com")

    async def test_taken_code(self, affiliates, campaign):
        await affiliates.register("user-1", "u1@example.com", custom_code="JANE20")

        with pytest.raises(DuplicateError):
            await affiliates.register("user-2", "u2@example.com", custom_code="jane20")

    async def test_malformed_code(self, affiliates, campaign):
        with pytest.raises(ValueError):
            await affiliates.register("user-1", "u1@example.com", custom_code="a b")

    async def test_no_default_campaign(self, affiliates):
        with pytest.raises(NotFoundError):
            await affiliates.register("user-1", "u1@example.com")

    async def test_registration_event_written(self, session, affiliates, campaign):
        await affiliates.register("user-1", "u1@example.com")
        assert await outbox_types(session) == ["affiliate.registered"]


class TestLifecycle:
    """Admin transitions."""

    async def test_approve_only_pending(self, affiliates, campaign, clock):
        affiliate = await affiliates.register("user-1", "u1@example.com")

        approved = await affiliates.approve(affiliate.id)
        assert approved.status == "approved"
        assert approved.approved_at == clock.now

        with pytest.raises(InvalidStateError):
            await affiliates.approve(affiliate.id)

    async def test_reject_pending(self, affiliates, campaign):
        affiliate = await affiliates.register("user-1", "u1@example.com")

        rejected = await affiliates.reject(affiliate.id)
        assert rejected.status == "rejected"

    async def test_suspend_twice(self, session, affiliates, affiliate):
        await affiliates.suspend(affiliate.id)
        suspended = await affiliates.suspend(affiliate.id)

        assert suspended.status == "suspended"
        types = await outbox_types(session)
        assert types.count("affiliate.suspended") == 1

    async def test_reactivate(self, session, affiliates, affiliate):
        await affiliates.suspend(affiliate.id)

        reactivated = await affiliates.reactivate(affiliate.id)

        assert reactivated.status == "approved"
        assert (await outbox_types(session))[-1] == "affiliate.suspended"

    async def test_reactivate_requires_suspension(self, affiliates, affiliate):
        with pytest.raises(InvalidStateError):
            await affiliates.reactivate(affiliate.id)

    async def test_unknown_affiliate(self, affiliates, campaign):
        with pytest.raises(NotFoundError):
            await affiliates.approve(12345)


class TestProfile:
    """Profile, custom rate and code lookups."""

    async def test_update_profile(self, affiliates, affiliate):
        updated = await affiliates.update_profile(
            affiliate.id, bio="Reviews", payout_method="paypal"
        )
        assert updated.bio == "Reviews"
        assert updated.payout_method == "paypal"

    async def test_status_not_editable(self, affiliates, affiliate):
        with pytest.raises(ValueError):
            await affiliates.update_profile(affiliate.id, status="approved")

    async def test_custom_commission_pair(self, affiliates, affiliate):
        with pytest.raises(ValueError):
            await affiliates.set_custom_commission(affiliate.id, "percentage", None)

        updated = await affiliates.set_custom_commission(
            affiliate.id, "percentage", 35
        )
        assert updated.custom_commission_value == Decimal("35")

        cleared = await affiliates.set_custom_commission(affiliate.id, None, None)
        assert cleared.custom_commission_type is None

    async def test_custom_percentage_over_100(self, affiliates, affiliate):
        with pytest.raises(ValueError):
            await affiliates.set_custom_commission(affiliate.id, "percentage", 150)

    async def test_validate_code(self, affiliates, affiliate, campaign):
        valid = await affiliates.validate_code("john20")
        assert valid.valid
        assert valid.code == "JOHN20"
        assert valid.display_name == "John"

        pending = await affiliates.register("user-2", "u2@example.com", custom_code="NEW001")
        assert not (await affiliates.validate_code(pending.code)).valid
        assert await affiliates.validate_code("NOPE99") is None

    async def test_list_affiliates_by_status(self, affiliates, affiliate):
        await affiliates.register("user-2", "u2@example.com")

        pending = await affiliates.list_affiliates(status="pending")
        approved = await affiliates.list_affiliates(status="approved")

        assert [a.user_id for a in pending.items] == ["user-2"]
        assert [a.id for a in approved.items] == [affiliate.id]


class TestCampaigns:
    """Tests for CampaignService."""

    async def test_duplicate_slug(self, campaigns, campaign):
        with pytest.raises(DuplicateError):
            await campaigns.create_campaign(name="Other", slug="default")

    async def test_invalid_rate(self, campaigns):
        with pytest.raises(ValueError):
            await campaigns.create_campaign(
                name="Bad", slug="bad", commission_type="percentage", commission_value=101
            )

    async def test_slug_frozen_once_used(self, campaigns, campaign, affiliate):
        with pytest.raises(InvalidStateError):
            await campaigns.update_campaign(campaign.id, slug="renamed")

    async def test_slug_editable_while_unused(self, campaigns, campaign):
        updated = await campaigns.update_campaign(campaign.id, slug="renamed")
        assert updated.slug == "renamed"

    async def test_unknown_field(self, campaigns, campaign):
        with pytest.raises(ValueError):
            await campaigns.update_campaign(campaign.id, is_default=False)

    async def test_single_default(self, session, campaigns, campaign):
        other = await campaigns.create_campaign(
            name="Summer", slug="summer", is_default=True
        )

        await session.refresh(campaign)
        assert not campaign.is_default
        assert (await campaigns.get_default()).id == other.id

        await campaigns.set_default(campaign.id)
        await session.refresh(other)
        assert not other.is_default
        assert (await campaigns.get_default()).id == campaign.id

    async def test_archive(self, campaigns, campaign):
        other = await campaigns.create_campaign(name="Summer", slug="summer")

        archived = await campaigns.archive(other.id)
        assert not archived.is_active
        assert [c.id for c in await campaigns.list_campaigns(active_only=True)] == [
            campaign.id
        ]

    async def test_default_cannot_be_archived(self, campaigns, campaign):
        with pytest.raises(InvalidStateError):
            await campaigns.archive(campaign.id)

    async def test_tiers(self, campaigns, campaign):
        await campaigns.add_tier(campaign.id, 10, "percentage", 25)
        await campaigns.add_tier(campaign.id, 50, "percentage", 30)

        tiers = await campaigns.list_tiers(campaign.id)
        assert [t.min_referrals for t in tiers] == [50, 10]

        with pytest.raises(DuplicateError):
            await campaigns.add_tier(campaign.id, 10, "fixed", 500)

        assert await campaigns.remove_tier(tiers[0].id)
        assert not await campaigns.remove_tier(tiers[0].id)

    async def test_product_commission_replaced(self, campaigns, campaign):
        first = await campaigns.set_product_commission(
            campaign.id, "prod_pro", "percentage", 25
        )
        second = await campaigns.set_product_commission(
            campaign.id, "prod_pro", "fixed", 900
        )

        assert second.id == first.id
        assert second.commission_type == "fixed"
        assert await campaigns.remove_product_commission(campaign.id, "prod_pro")
        assert not await campaigns.remove_product_commission(campaign.id, "prod_pro")


class TestOutboxDispatch:
    """Lifecycle events reach hooks after commit."""

    async def test_events_delivered_once(self, session_maker, affiliates, campaign, clock):
        received = []

        async def on_registered(data):
            received.append(data)

        dispatcher = OutboxDispatcher(
            session_maker,
            LifecycleHooks(on_affiliate_registered=on_registered),
            clock=clock,
        )
        affiliate = await affiliates.register("user-1", "u1@example.com")
        await affiliates.approve(affiliate.id)

        stats = await dispatcher.dispatch_pending()

        assert stats.delivered == 1
        assert stats.skipped == 1
        assert received == [
            AffiliateEventData(
                affiliate_id=affiliate.id,
                user_id="user-1",
                code=affiliate.code,
                email="u1@example.com",
                status="pending",
            )
        ]
        again = await dispatcher.dispatch_pending()
        assert (again.delivered, again.failed, again.skipped) == (0, 0, 0)

    async def test_failing_hook_retried(self, session_maker, affiliates, campaign, clock):
        calls = []

        def on_registered(data):
            calls.append(data)
            raise RuntimeError("host is down")

        dispatcher = OutboxDispatcher(
            session_maker,
            LifecycleHooks(on_affiliate_registered=on_registered),
            max_attempts=2,
            clock=clock,
        )
        await affiliates.register("user-1", "u1@example.com")

        first = await dispatcher.dispatch_pending()
        second = await dispatcher.dispatch_pending()
        third = await dispatcher.dispatch_pending()

        assert first.failed == 1
        assert second.failed == 1
        assert third.failed == 0
        assert len(calls) == 2

        async with session_maker() as other:
            event = (await other.execute(select(OutboxEvent))).scalar_one()
        assert event.attempts == 2
        assert event.dispatched_at is None
        assert event.last_error == "RuntimeError: host is down"
