"""Integration tests for the payment webhook processor."""

import json
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from affiliates.models import AnalyticsEvent, Commission, Referral
from affiliates.services.affiliate_service import AffiliateService
from affiliates.services.results import Blocked, BlockReason, Ok
from affiliates.services.webhook import WebhookProcessor, build_signature_header
from affiliates.utils.exceptions import WebhookPayloadError, WebhookSignatureError


@pytest.fixture
def processor(session, clock, webhook_secret):
    return WebhookProcessor(session, webhook_secret, clock=clock)


@pytest.fixture
def deliver(processor, clock, webhook_secret):
    """Sign and process one event envelope."""

    async def deliver(event_type: str, data: dict, event_id: str = "evt_1"):
        body = json.dumps({"id": event_id, "type": event_type, "data": data}).encode()
        header = build_signature_header(
            webhook_secret, int(clock.now.timestamp()), body
        )
        return await processor.process(body, header)

    return deliver


@pytest.fixture
async def customer(funnel, affiliate):
    await funnel.signup("visitor-1")


async def pay(deliver, payment_id="in_1", amount_cents=10000, **extra):
    data = {
        "payment_id": payment_id,
        "customer_id": "cus_1",
        "amount_cents": amount_cents,
        "currency": "usd",
        "charge_id": f"ch_{payment_id}",
        **extra,
    }
    return await deliver("payment.succeeded", data, event_id=f"evt_{payment_id}")


class TestPaymentFlow:
    """Checkout, payment and refund events end to end."""

    async def test_checkout_then_payment(self, session, affiliate, customer, deliver):
        linked = await deliver(
            "checkout.completed", {"customer_id": "cus_1", "user_id": "visitor-1"}
        )
        assert isinstance(linked, Ok)

        result = await pay(deliver)

        assert isinstance(result, Ok)
        assert result.value.commission_amount_cents == 2000
        referral = await session.scalar(
            select(Referral).execution_options(populate_existing=True)
        )
        assert referral.status == "converted"
        await session.refresh(affiliate)
        assert affiliate.total_conversions == 1
        assert affiliate.pending_commissions_cents == 2000

        types = (await session.execute(select(AnalyticsEvent.event_type))).scalars().all()
        assert "conversion" in types

    async def test_second_payment_counts_one_conversion(
        self, session, affiliate, customer, deliver
    ):
        await deliver(
            "checkout.completed", {"customer_id": "cus_1", "user_id": "visitor-1"}
        )
        await pay(deliver, "in_1")
        await pay(deliver, "in_2")

        await session.refresh(affiliate)
        assert affiliate.total_conversions == 1
        assert affiliate.total_commissions_cents == 4000

    async def test_redelivered_payment_is_replayed(
        self, session, affiliate, customer, deliver
    ):
        await deliver(
            "checkout.completed", {"customer_id": "cus_1", "user_id": "visitor-1"}
        )
        first = await pay(deliver)
        second = await pay(deliver)

        assert second.replayed
        assert second.value.id == first.value.id
        commissions = (await session.execute(select(Commission))).scalars().all()
        assert len(commissions) == 1

    async def test_lost_insert_race_returns_winner(
        self, session, affiliate, customer, processor, deliver
    ):
        await deliver(
            "checkout.completed", {"customer_id": "cus_1", "user_id": "visitor-1"}
        )
        first = await pay(deliver)
        winner_id = first.value.id
        # A concurrent delivery passes the lookup before the winner commits
        processor.ledger.commissions.get_by_external_event_id = AsyncMock(
            return_value=None
        )

        second = await pay(deliver)

        assert isinstance(second, Ok)
        assert second.replayed
        assert second.value.id == winner_id
        commissions = (await session.execute(select(Commission))).scalars().all()
        assert len(commissions) == 1
        await session.refresh(affiliate)
        assert affiliate.total_revenue_cents == 10000
        assert affiliate.total_conversions == 1

    async def test_refund_reverses_commission(
        self, session, affiliate, customer, deliver
    ):
        await deliver(
            "checkout.completed", {"customer_id": "cus_1", "user_id": "visitor-1"}
        )
        await pay(deliver)

        result = await deliver(
            "payment.refunded",
            {"charge_id": "ch_in_1", "reason": "requested_by_customer"},
            event_id="evt_refund",
        )

        assert isinstance(result, Ok)
        assert result.value.status == "reversed"
        assert result.value.reversal_reason == "requested_by_customer"
        await session.refresh(affiliate)
        assert affiliate.total_commissions_cents == 0
        assert affiliate.total_revenue_cents == 10000

        again = await deliver(
            "payment.refunded", {"charge_id": "ch_in_1"}, event_id="evt_refund_2"
        )
        assert again == Blocked(BlockReason.ALREADY_REVERSED)

    async def test_refund_of_unknown_charge(self, deliver):
        result = await deliver("payment.refunded", {"charge_id": "ch_unknown"})
        assert result == Blocked(BlockReason.COMMISSION_NOT_FOUND)

    async def test_unattributed_customer(self, session, affiliate, deliver):
        result = await pay(deliver)

        assert result == Blocked(BlockReason.NO_REFERRAL_FOR_CUSTOMER)
        assert (await session.execute(select(Commission))).first() is None

    async def test_suspended_affiliate_earns_nothing(
        self, session, clock, affiliate, customer, deliver
    ):
        await deliver(
            "checkout.completed", {"customer_id": "cus_1", "user_id": "visitor-1"}
        )
        await AffiliateService(session, clock).suspend(affiliate.id)

        result = await pay(deliver)
        assert result == Blocked(BlockReason.AFFILIATE_NOT_APPROVED)

    async def test_self_referred_payment_earns_nothing(
        self, session, affiliate, funnel, deliver
    ):
        referral = await funnel.click()
        referral.user_id = affiliate.user_id
        referral.customer_id = "cus_1"
        referral.status = "signed_up"
        await session.commit()

        result = await pay(deliver)

        assert result == Blocked(BlockReason.SELF_REFERRAL)
        assert (await session.execute(select(Commission))).first() is None
        await session.refresh(affiliate)
        assert affiliate.total_revenue_cents == 0

    async def test_guest_checkout_not_attributed(self, affiliate, deliver):
        result = await deliver(
            "checkout.completed", {"customer_id": "cus_9", "affiliate_code": "JOHN20"}
        )
        assert result == Blocked(BlockReason.GUEST_CHECKOUT)


class TestDeliveryChecks:
    """Signature and payload validation."""

    async def test_unknown_event_type_ignored(self, deliver):
        assert await deliver("customer.updated", {"customer_id": "cus_1"}) is None

    async def test_bad_signature(self, processor, clock):
        body = b'{"id": "evt_1", "type": "payment.succeeded", "data": {}}'
        header = build_signature_header(
            "some_other_secret", int(clock.now.timestamp()), body
        )

        with pytest.raises(WebhookSignatureError):
            await processor.process(body, header)

    async def test_missing_signature(self, processor):
        with pytest.raises(WebhookSignatureError):
            await processor.process(b"{}", None)

    async def test_stale_signature(self, processor, clock, webhook_secret):
        body = b'{"id": "evt_1", "type": "customer.updated", "data": {}}'
        header = build_signature_header(
            webhook_secret, int(clock.now.timestamp()) - 600, body
        )

        with pytest.raises(WebhookSignatureError):
            await processor.process(body, header)

    async def test_malformed_body(self, processor, clock, webhook_secret):
        body = b"not json"
        header = build_signature_header(
            webhook_secret, int(clock.now.timestamp()), body
        )

        with pytest.raises(WebhookPayloadError):
            await processor.process(body, header)

    async def test_malformed_event_data(self, deliver):
        with pytest.raises(WebhookPayloadError):
            await deliver("payment.succeeded", {"payment_id": "in_1"})
