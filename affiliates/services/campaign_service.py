"""
Campaign service.

Manages campaigns, their volume tiers and per-product rates.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.config.constants import (
    DEFAULT_COOKIE_DURATION_DAYS,
    DEFAULT_MIN_PAYOUT_CENTS,
)
from affiliates.models.campaign import Campaign, CommissionTier, ProductCommission
from affiliates.models.enums import (
    CommissionDuration,
    CommissionType,
    DiscountType,
    PayoutTerm,
)
from affiliates.repositories.affiliate_repository import AffiliateRepository
from affiliates.repositories.campaign_repository import (
    CampaignRepository,
    CommissionTierRepository,
    ProductCommissionRepository,
)
from affiliates.services.base_service import BaseService, transaction
from affiliates.utils.datetime_utils import Clock, utc_now
from affiliates.utils.exceptions import DuplicateError, InvalidStateError, NotFoundError
from affiliates.validators.common import validate_commission_value, validate_slug

# Fields update_campaign accepts
UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "slug",
        "description",
        "is_active",
        "commission_type",
        "commission_value",
        "commission_duration",
        "commission_duration_value",
        "cookie_duration_days",
        "min_payout_cents",
        "payout_term",
        "allowed_products",
        "excluded_products",
        "max_clicks_per_ip_per_hour",
        "referee_discount_type",
        "referee_discount_value",
        "referee_coupon_id",
    }
)


def _checked_rate(commission_type: str, value: Any) -> Decimal:
    is_valid, rate, error = validate_commission_value(commission_type, value)
    if not is_valid:
        raise ValueError(error)
    return rate


def _checked_slug(value: str) -> str:
    is_valid, slug, error = validate_slug(value)
    if not is_valid:
        raise ValueError(error)
    return slug


class CampaignService(BaseService):
    """Campaign management."""

    def __init__(self, session: AsyncSession, clock: Clock = utc_now) -> None:
        super().__init__(session, clock)
        self.campaigns = CampaignRepository(session)
        self.tiers = CommissionTierRepository(session)
        self.product_rates = ProductCommissionRepository(session)
        self.affiliates = AffiliateRepository(session)

    @transaction
    async def create_campaign(
        self,
        name: str,
        slug: str,
        commission_type: str = CommissionType.PERCENTAGE,
        commission_value: Decimal | int | float = Decimal("20"),
        commission_duration: str = CommissionDuration.LIFETIME,
        commission_duration_value: int | None = None,
        cookie_duration_days: int = DEFAULT_COOKIE_DURATION_DAYS,
        min_payout_cents: int = DEFAULT_MIN_PAYOUT_CENTS,
        payout_term: str = PayoutTerm.NET_30,
        is_default: bool = False,
        description: str | None = None,
        allowed_products: list[str] | None = None,
        excluded_products: list[str] | None = None,
        max_clicks_per_ip_per_hour: int | None = None,
        referee_discount_type: str | None = None,
        referee_discount_value: Decimal | int | float | None = None,
        referee_coupon_id: str | None = None,
    ) -> Campaign:
        """
        Create a campaign.

        Making it the default unsets the previous default.

        Raises:
            ValueError: If slug, rate or discount is invalid
            DuplicateError: If slug is taken
        """
        slug = _checked_slug(slug)
        if await self.campaigns.get_by_slug(slug):
            raise DuplicateError(f'Campaign with slug "{slug}" already exists')

        data = {
            "name": name,
            "slug": slug,
            "description": description,
            "is_active": True,
            "is_default": is_default,
            "commission_type": CommissionType(commission_type).value,
            "commission_value": _checked_rate(commission_type, commission_value),
            "commission_duration": CommissionDuration(commission_duration).value,
            "commission_duration_value": commission_duration_value,
            "cookie_duration_days": cookie_duration_days,
            "min_payout_cents": min_payout_cents,
            "payout_term": PayoutTerm(payout_term).value,
            "allowed_products": allowed_products,
            "excluded_products": excluded_products,
            "max_clicks_per_ip_per_hour": max_clicks_per_ip_per_hour,
            "referee_discount_type": referee_discount_type,
            "referee_discount_value": referee_discount_value,
            "referee_coupon_id": referee_coupon_id,
        }
        self._check_fields(data)

        if is_default:
            await self.campaigns.clear_default()
        campaign = await self.campaigns.create(**data)

        self.logger.info(
            "Campaign created",
            extra={"campaign_id": campaign.id, "slug": slug, "is_default": is_default},
        )
        return campaign

    @transaction
    async def update_campaign(self, campaign_id: int, **changes: Any) -> Campaign:
        """
        Update campaign fields.

        The slug is frozen once any affiliate is enrolled.

        Raises:
            NotFoundError: If campaign doesn't exist
            ValueError: If a field is unknown or invalid
            DuplicateError: If new slug is taken
            InvalidStateError: If slug changes on a campaign in use
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown campaign fields: {sorted(unknown)}")

        campaign = await self._get(campaign_id)

        if "slug" in changes and changes["slug"] != campaign.slug:
            slug = _checked_slug(changes["slug"])
            if await self.affiliates.count_for_campaign(campaign_id):
                raise InvalidStateError(
                    "Slug cannot change once affiliates use the campaign"
                )
            if await self.campaigns.get_by_slug(slug):
                raise DuplicateError(f'Campaign with slug "{slug}" already exists')
            changes["slug"] = slug

        if "commission_type" in changes or "commission_value" in changes:
            commission_type = changes.get("commission_type", campaign.commission_type)
            changes["commission_value"] = _checked_rate(
                commission_type,
                changes.get("commission_value", campaign.commission_value),
            )
        self._check_fields(changes)

        for key, value in changes.items():
            setattr(campaign, key, value)
        await self.session.flush()

        self.logger.info(
            "Campaign updated",
            extra={"campaign_id": campaign_id, "fields": sorted(changes)},
        )
        return campaign

    @transaction
    async def set_default(self, campaign_id: int) -> Campaign:
        """Make a campaign the default one."""
        campaign = await self._get(campaign_id)
        if not campaign.is_default:
            await self.campaigns.clear_default()
            campaign.is_default = True
            await self.session.flush()
            self.logger.info("Default campaign changed", extra={"campaign_id": campaign_id})
        return campaign

    @transaction
    async def archive(self, campaign_id: int) -> Campaign:
        """
        Deactivate a campaign.

        Raises:
            InvalidStateError: If campaign is the default one
        """
        campaign = await self._get(campaign_id)
        if campaign.is_default:
            raise InvalidStateError("Cannot archive the default campaign")
        campaign.is_active = False
        await self.session.flush()
        self.logger.info("Campaign archived", extra={"campaign_id": campaign_id})
        return campaign

    async def get(self, campaign_id: int) -> Campaign | None:
        return await self.campaigns.get_by_id(campaign_id)

    async def get_by_slug(self, slug: str) -> Campaign | None:
        return await self.campaigns.get_by_slug(slug)

    async def get_default(self) -> Campaign | None:
        return await self.campaigns.get_default()

    async def list_campaigns(self, active_only: bool = False) -> list[Campaign]:
        return await self.campaigns.list_campaigns(active_only)

    @transaction
    async def add_tier(
        self,
        campaign_id: int,
        min_referrals: int,
        commission_type: str,
        commission_value: Decimal | int | float,
    ) -> CommissionTier:
        """
        Add a volume tier.

        Raises:
            NotFoundError: If campaign doesn't exist
            ValueError: If threshold or rate is invalid
            DuplicateError: If the campaign has a tier with the same threshold
        """
        await self._get(campaign_id)
        if min_referrals < 0:
            raise ValueError("min_referrals cannot be negative")
        rate = _checked_rate(commission_type, commission_value)

        if await self.tiers.exists(campaign_id=campaign_id, min_referrals=min_referrals):
            raise DuplicateError(
                f"Tier for {min_referrals} referrals already exists"
            )
        tier = await self.tiers.create(
            campaign_id=campaign_id,
            min_referrals=min_referrals,
            commission_type=CommissionType(commission_type).value,
            commission_value=rate,
        )
        self.logger.info(
            "Commission tier added",
            extra={"campaign_id": campaign_id, "min_referrals": min_referrals},
        )
        return tier

    @transaction
    async def remove_tier(self, tier_id: int) -> bool:
        """Remove a volume tier; False if it doesn't exist."""
        tier = await self.tiers.get_by_id(tier_id)
        if not tier:
            return False
        await self.tiers.delete(tier)
        return True

    async def list_tiers(self, campaign_id: int) -> list[CommissionTier]:
        """Tiers of a campaign, highest threshold first."""
        return await self.tiers.list_for_campaign(campaign_id)

    @transaction
    async def set_product_commission(
        self,
        campaign_id: int,
        product_id: str,
        commission_type: str,
        commission_value: Decimal | int | float,
    ) -> ProductCommission:
        """
        Set (create or replace) the rate of one product in a campaign.

        Raises:
            NotFoundError: If campaign doesn't exist
            ValueError: If rate is invalid
        """
        await self._get(campaign_id)
        rate = _checked_rate(commission_type, commission_value)

        existing = await self.product_rates.get_for_product(campaign_id, product_id)
        if existing:
            existing.commission_type = CommissionType(commission_type).value
            existing.commission_value = rate
            await self.session.flush()
            return existing

        product_rate = await self.product_rates.create(
            campaign_id=campaign_id,
            product_id=product_id,
            commission_type=CommissionType(commission_type).value,
            commission_value=rate,
        )
        self.logger.info(
            "Product commission set",
            extra={"campaign_id": campaign_id, "product_id": product_id},
        )
        return product_rate

    @transaction
    async def remove_product_commission(self, campaign_id: int, product_id: str) -> bool:
        """Remove a product rate; False if none was set."""
        existing = await self.product_rates.get_for_product(campaign_id, product_id)
        if not existing:
            return False
        await self.product_rates.delete(existing)
        return True

    async def _get(self, campaign_id: int) -> Campaign:
        campaign = await self.campaigns.get_by_id(campaign_id)
        if not campaign:
            raise NotFoundError(f"Campaign {campaign_id} not found")
        return campaign

    @staticmethod
    def _check_fields(data: dict[str, Any]) -> None:
        if data.get("cookie_duration_days") is not None and data["cookie_duration_days"] <= 0:
            raise ValueError("cookie_duration_days must be positive")
        if data.get("min_payout_cents") is not None and data["min_payout_cents"] < 0:
            raise ValueError("min_payout_cents cannot be negative")
        if data.get("commission_duration") is not None:
            CommissionDuration(data["commission_duration"])
        if data.get("payout_term") is not None:
            PayoutTerm(data["payout_term"])
        if data.get("referee_discount_type") is not None:
            data["referee_discount_value"] = _checked_rate(
                DiscountType(data["referee_discount_type"]).value,
                data.get("referee_discount_value") or 0,
            )
