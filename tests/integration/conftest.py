"""
Shared fixtures for integration tests.

Each test gets a fresh in-memory SQLite database shared by every session
of the test (StaticPool keeps the single connection alive).
"""

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from affiliates.config.database import create_session_maker
from affiliates.models import Base
from affiliates.services.affiliate_service import AffiliateService
from affiliates.services.campaign_service import CampaignService
from affiliates.services.referral.attribution import AttributionResolver
from affiliates.services.referral.tracker import ReferralTracker


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def campaign(session, clock):
    """Default campaign: 20% commission, NET-30, $50 minimum payout."""
    return await CampaignService(session, clock).create_campaign(
        name="Default",
        slug="default",
        commission_type="percentage",
        commission_value=Decimal("20"),
        payout_term="NET-30",
        min_payout_cents=5000,
        is_default=True,
    )


@pytest.fixture
async def affiliate(session, clock, campaign):
    """Approved affiliate owned by user "aff-user"."""
    service = AffiliateService(session, clock)
    registered = await service.register(
        "aff-user", "aff@example.com", custom_code="JOHN20", display_name="John"
    )
    return await service.approve(registered.id)


class Funnel:
    """Drives a visitor through click, signup and checkout."""

    def __init__(self, session, clock) -> None:
        self.session = session
        self.clock = clock

    async def click(self, code: str = "JOHN20"):
        result = await ReferralTracker(self.session, clock=self.clock).track_click(
            code, "/pricing"
        )
        return result.value

    async def signup(self, user_id: str, code: str = "JOHN20"):
        referral = await self.click(code)
        result = await AttributionResolver(self.session, self.clock).attribute_signup(
            referral.referral_id, user_id
        )
        return result.value

    async def customer(self, user_id: str, customer_id: str, code: str = "JOHN20"):
        await self.signup(user_id, code)
        result = await AttributionResolver(self.session, self.clock).link_customer(
            customer_id, user_id
        )
        return result.value


@pytest.fixture
def funnel(session, clock):
    return Funnel(session, clock)
