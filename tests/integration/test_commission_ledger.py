"""Integration tests for commission creation, reversal and stats."""

from datetime import timedelta
from decimal import Decimal

import pytest

from affiliates.repositories.affiliate_repository import AffiliateRepository
from affiliates.services.affiliate_service import AffiliateService
from affiliates.services.campaign_service import CampaignService
from affiliates.services.commission.ledger import CommissionLedger
from affiliates.services.results import Blocked, BlockReason, Ok
from affiliates.utils.exceptions import InvalidStateError


@pytest.fixture
async def referral(funnel, affiliate):
    return await funnel.customer("visitor-1", "cus_1")


@pytest.fixture
def ledger(session, clock):
    return CommissionLedger(session, clock=clock)


@pytest.fixture
def pay(ledger, affiliate, referral):
    """Create a commission for a payment of the referred customer."""
    counter = iter(range(1, 1000))

    async def pay(amount_cents=10000, **kwargs):
        event_id = kwargs.pop("external_event_id", f"in_{next(counter)}")
        return await ledger.create(
            affiliate_id=affiliate.id,
            referral_pk=referral.id,
            customer_id="cus_1",
            external_event_id=event_id,
            sale_amount_cents=amount_cents,
            currency="USD",
            **kwargs,
        )

    return pay


class TestCreate:
    """Tests for CommissionLedger.create."""

    async def test_campaign_rate(self, session, clock, affiliate, pay):
        result = await pay(10000, charge_id="ch_1")

        assert isinstance(result, Ok)
        commission = result.value
        assert commission.commission_amount_cents == 2000
        assert commission.commission_rate == Decimal("20")
        assert commission.status == "pending"
        assert commission.currency == "usd"
        assert commission.due_at == clock.now + timedelta(days=30)

        await session.refresh(affiliate)
        assert affiliate.total_revenue_cents == 10000
        assert affiliate.total_commissions_cents == 2000
        assert affiliate.pending_commissions_cents == 2000
        assert affiliate.paid_commissions_cents == 0

    async def test_same_event_is_replayed(self, session, affiliate, pay):
        first = await pay(10000, external_event_id="in_dup")
        second = await pay(10000, external_event_id="in_dup")

        assert second.replayed
        assert second.value.id == first.value.id
        await session.refresh(affiliate)
        assert affiliate.total_commissions_cents == 2000

    async def test_non_positive_amount(self, pay):
        assert await pay(0) == Blocked(BlockReason.NON_POSITIVE_AMOUNT)

    async def test_excluded_product(self, session, clock, campaign, pay):
        await CampaignService(session, clock).update_campaign(
            campaign.id, excluded_products=["prod_gift"]
        )
        assert await pay(product_id="prod_gift") == Blocked(
            BlockReason.PRODUCT_EXCLUDED
        )
        assert isinstance(await pay(product_id="prod_pro"), Ok)

    async def test_product_outside_allow_list(self, session, clock, campaign, pay):
        await CampaignService(session, clock).update_campaign(
            campaign.id, allowed_products=["prod_pro"]
        )
        assert await pay(product_id="prod_basic") == Blocked(
            BlockReason.PRODUCT_NOT_ALLOWED
        )

    async def test_max_payments(self, session, clock, campaign, pay):
        await CampaignService(session, clock).update_campaign(
            campaign.id,
            commission_duration="max_payments",
            commission_duration_value=2,
        )

        first = await pay(subscription_id="sub_1")
        second = await pay(subscription_id="sub_1")
        third = await pay(subscription_id="sub_1")

        assert first.value.payment_number == 1
        assert second.value.payment_number == 2
        assert third == Blocked(BlockReason.MAX_PAYMENTS_REACHED)

    async def test_max_months(self, session, clock, campaign, pay):
        await CampaignService(session, clock).update_campaign(
            campaign.id,
            commission_duration="max_months",
            commission_duration_value=2,
        )

        assert isinstance(await pay(subscription_id="sub_1"), Ok)
        clock.advance(days=31)
        assert isinstance(await pay(subscription_id="sub_1"), Ok)
        clock.advance(days=30)
        assert await pay(subscription_id="sub_1") == Blocked(
            BlockReason.MAX_MONTHS_REACHED
        )

    async def test_duration_ignored_for_one_off_payments(
        self, session, clock, campaign, pay
    ):
        await CampaignService(session, clock).update_campaign(
            campaign.id,
            commission_duration="max_payments",
            commission_duration_value=1,
        )
        assert isinstance(await pay(), Ok)
        assert isinstance(await pay(), Ok)


class TestRatePriority:
    """Custom rate beats product rate beats tier beats campaign rate."""

    async def test_tier_applies_by_conversions(
        self, session, clock, campaign, affiliate, pay
    ):
        await CampaignService(session, clock).add_tier(campaign.id, 5, "percentage", 30)
        await AffiliateRepository(session).increment_stats(
            affiliate.id, total_conversions=5
        )

        result = await pay(10000)
        assert result.value.commission_amount_cents == 3000

    async def test_tier_not_reached(self, session, clock, campaign, affiliate, pay):
        await CampaignService(session, clock).add_tier(campaign.id, 5, "percentage", 30)
        await AffiliateRepository(session).increment_stats(
            affiliate.id, total_conversions=4
        )

        result = await pay(10000)
        assert result.value.commission_amount_cents == 2000

    async def test_product_rate_beats_tier(
        self, session, clock, campaign, affiliate, pay
    ):
        service = CampaignService(session, clock)
        await service.add_tier(campaign.id, 0, "percentage", 30)
        await service.set_product_commission(campaign.id, "prod_pro", "fixed", 1500)

        result = await pay(10000, product_id="prod_pro")
        assert result.value.commission_amount_cents == 1500
        assert result.value.commission_type == "fixed"

    async def test_custom_rate_beats_everything(
        self, session, clock, campaign, affiliate, pay
    ):
        await CampaignService(session, clock).set_product_commission(
            campaign.id, "prod_pro", "fixed", 1500
        )
        await AffiliateService(session, clock).set_custom_commission(
            affiliate.id, "percentage", Decimal("50")
        )

        result = await pay(10000, product_id="prod_pro")
        assert result.value.commission_amount_cents == 5000


class TestReverse:
    """Tests for CommissionLedger.reverse."""

    async def test_reverse_pending(self, session, affiliate, ledger, pay):
        commission = (await pay(10000)).value

        result = await ledger.reverse(commission.id, "refund")

        assert isinstance(result, Ok)
        assert result.value.status == "reversed"
        assert result.value.reversal_reason == "refund"
        await session.refresh(affiliate)
        assert affiliate.total_revenue_cents == 10000
        assert affiliate.total_commissions_cents == 0
        assert affiliate.pending_commissions_cents == 0

    async def test_reverse_paid(self, session, affiliate, ledger, pay):
        commission = (await pay(10000)).value
        await ledger.mark_paid(commission.id, payout_id=None)

        await ledger.reverse(commission.id, "chargeback")

        await session.refresh(affiliate)
        assert affiliate.total_commissions_cents == 0
        assert affiliate.pending_commissions_cents == 0
        assert affiliate.paid_commissions_cents == 0

    async def test_reverse_twice(self, ledger, pay):
        commission = (await pay(10000)).value
        await ledger.reverse(commission.id, "refund")

        result = await ledger.reverse(commission.id, "refund")
        assert result == Blocked(BlockReason.ALREADY_REVERSED)

    async def test_reverse_unknown(self, ledger):
        result = await ledger.reverse(999, "refund")
        assert result == Blocked(BlockReason.COMMISSION_NOT_FOUND)

    async def test_counters_never_negative(self, session, affiliate, ledger, pay):
        commission = (await pay(10000)).value
        await AffiliateRepository(session).set_stats(
            affiliate.id, total_commissions_cents=500, pending_commissions_cents=500
        )

        await ledger.reverse(commission.id, "refund")

        await session.refresh(affiliate)
        assert affiliate.total_commissions_cents == 0
        assert affiliate.pending_commissions_cents == 0


class TestTransitions:
    """Tests for approve and mark_paid."""

    async def test_approve_pending_only(self, ledger, pay, clock):
        commission = (await pay(10000)).value

        approved = await ledger.approve(commission.id)
        assert approved.status == "approved"
        assert approved.approved_at == clock.now

        with pytest.raises(InvalidStateError):
            await ledger.approve(commission.id)

    async def test_mark_paid_moves_amount(self, session, affiliate, ledger, pay):
        commission = (await pay(10000)).value

        await ledger.mark_paid(commission.id, payout_id=None)

        await session.refresh(affiliate)
        assert affiliate.pending_commissions_cents == 0
        assert affiliate.paid_commissions_cents == 2000

    async def test_reversed_cannot_be_paid(self, ledger, pay):
        commission = (await pay(10000)).value
        await ledger.reverse(commission.id, "refund")

        with pytest.raises(InvalidStateError):
            await ledger.mark_paid(commission.id, payout_id=None)


class TestRecomputeStats:
    """Tests for CommissionLedger.recompute_stats."""

    async def test_counters_rebuilt(self, session, affiliate, ledger, pay):
        first = (await pay(10000)).value
        second = (await pay(5000)).value
        await ledger.mark_paid(second.id, payout_id=None)
        third = (await pay(2500)).value
        await ledger.reverse(third.id, "refund")
        await AffiliateRepository(session).set_stats(
            affiliate.id, total_clicks=99, pending_commissions_cents=1
        )

        stats = await ledger.recompute_stats(affiliate.id)

        assert first.commission_amount_cents == 2000
        assert stats == {
            "total_clicks": 1,
            "total_signups": 1,
            "total_conversions": 0,
            "total_revenue_cents": 17500,
            "total_commissions_cents": 3000,
            "pending_commissions_cents": 2000,
            "paid_commissions_cents": 1000,
        }
        await session.refresh(affiliate)
        assert affiliate.total_clicks == 1
        assert affiliate.pending_commissions_cents == 2000
