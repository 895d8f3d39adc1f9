"""Integration tests for the aiohttp endpoints."""

import json
from decimal import Decimal

import pytest
from aiohttp import test_utils

from affiliates.config.constants import WEBHOOK_SIGNATURE_HEADER
from affiliates.program import AffiliateProgram
from affiliates.services.context import HostAuth, RequestContext
from affiliates.services.webhook import build_signature_header
from affiliates.web import create_app

WEBHOOK_URL = "/affiliates/webhooks/payments"


@pytest.fixture
async def program(session_maker, clock, webhook_secret):
    program = AffiliateProgram(
        session_maker,
        HostAuth(lambda raw: None, lambda raw: False),
        base_url="https://example.com",
        webhook_secret=webhook_secret,
        default_campaign={"commission_value": Decimal("20")},
        clock=clock,
    )
    await program.initialize()
    admin = RequestContext(user_id="admin-1", is_admin=True)
    affiliate = await program.register(
        RequestContext(user_id="aff-user"),
        "aff@example.com",
        custom_code="JOHN20",
        display_name="John",
    )
    await program.approve_affiliate(admin, affiliate.id)
    return program


@pytest.fixture
async def client(program):
    client = test_utils.TestClient(test_utils.TestServer(create_app(program)))
    await client.start_server()
    yield client
    await client.close()


def signed_body(clock, secret, event_type="customer.updated", data=None):
    body = json.dumps(
        {"id": "evt_1", "type": event_type, "data": data or {}}
    ).encode()
    header = build_signature_header(secret, int(clock.now.timestamp()), body)
    return body, header


class TestPaymentWebhook:
    """POST /affiliates/webhooks/payments"""

    async def test_accepted(self, client, clock, webhook_secret):
        body, header = signed_body(clock, webhook_secret)

        resp = await client.post(
            WEBHOOK_URL, data=body, headers={WEBHOOK_SIGNATURE_HEADER: header}
        )

        assert resp.status == 200
        assert await resp.json() == {"received": True}

    async def test_missing_signature(self, client, clock, webhook_secret):
        body, _ = signed_body(clock, webhook_secret)

        resp = await client.post(WEBHOOK_URL, data=body)
        assert resp.status == 400

    async def test_invalid_signature(self, client, clock):
        body, header = signed_body(clock, "not_the_webhook_secret")

        resp = await client.post(
            WEBHOOK_URL, data=body, headers={WEBHOOK_SIGNATURE_HEADER: header}
        )
        assert resp.status == 401

    async def test_malformed_payload_asks_for_retry(
        self, client, clock, webhook_secret
    ):
        body, header = signed_body(
            clock, webhook_secret, "payment.succeeded", {"payment_id": "in_1"}
        )

        resp = await client.post(
            WEBHOOK_URL, data=body, headers={WEBHOOK_SIGNATURE_HEADER: header}
        )
        assert resp.status == 500


class TestPublicEndpoints:
    """Code lookup and click tracking."""

    async def test_validate_code(self, client):
        resp = await client.get("/affiliates/affiliate/john20")

        assert resp.status == 200
        assert await resp.json() == {
            "code": "JOHN20",
            "displayName": "John",
            "valid": True,
        }

    async def test_unknown_code(self, client):
        resp = await client.get("/affiliates/affiliate/NOPE99")
        assert resp.status == 404

    async def test_track_click(self, client):
        resp = await client.post(
            "/affiliates/track",
            json={"code": "JOHN20", "landing_page": "/pricing", "sub_id": "yt"},
        )

        assert resp.status == 200
        assert (await resp.json())["referral_id"]

    async def test_track_unknown_code(self, client):
        resp = await client.post("/affiliates/track", json={"code": "NOPE99"})

        assert resp.status == 200
        assert await resp.json() == {"referral_id": None}

    async def test_track_requires_code(self, client):
        resp = await client.post("/affiliates/track", json={"landing_page": "/"})
        assert resp.status == 400

    async def test_track_invalid_json(self, client):
        resp = await client.post(
            "/affiliates/track",
            data=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status == 400
