"""
Campaign models.

A campaign holds the commission rules affiliates are enrolled under, plus
volume tiers and per-product overrides.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from affiliates.models.base import Base
from affiliates.models.enums import CommissionDuration, CommissionType, PayoutTerm
from affiliates.models.types import CentsType, RatePercentType, UTCDateTime
from affiliates.utils.datetime_utils import utc_now


class Campaign(Base):
    """
    Campaign entity.

    Attributes:
        id: Primary key
        name: Display name
        slug: Unique url-safe identifier, frozen once affiliates reference it
        description: Optional description
        is_active: Inactive campaigns stop tracking and commissions
        is_default: Exactly one campaign is the default
        commission_type: percentage or fixed
        commission_value: Percent (0-100) or cents
        commission_duration: lifetime, max_payments or max_months
        commission_duration_value: Bound for max_payments / max_months
        cookie_duration_days: Attribution window after a click
        min_payout_cents: Minimum balance for a payout
        payout_term: NET-0 .. NET-90
        allowed_products: Product ids eligible for commission (None = all)
        excluded_products: Product ids never eligible
        max_clicks_per_ip_per_hour: Overrides the deployment-wide click limit
        referee_discount_type: Discount offered to referred customers
        referee_discount_value: Percent or cents
        referee_coupon_id: Pre-created coupon id at the payment provider
    """

    __tablename__ = "campaigns"
    __table_args__ = (
        CheckConstraint("commission_value >= 0", name="commission_value_non_negative"),
        CheckConstraint("cookie_duration_days > 0", name="cookie_duration_positive"),
        CheckConstraint("min_payout_cents >= 0", name="min_payout_non_negative"),
        Index(
            "uq_campaigns_single_default",
            "is_default",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default = 1"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False, index=True
    )
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Commission rules
    commission_type: Mapped[str] = mapped_column(
        String(20), default=CommissionType.PERCENTAGE.value, nullable=False
    )
    commission_value: Mapped[Decimal] = mapped_column(
        RatePercentType, nullable=False
    )
    commission_duration: Mapped[str] = mapped_column(
        String(20), default=CommissionDuration.LIFETIME.value, nullable=False
    )
    commission_duration_value: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )

    # Attribution and payout
    cookie_duration_days: Mapped[int] = mapped_column(
        Integer, default=30, nullable=False
    )
    min_payout_cents: Mapped[int] = mapped_column(
        CentsType, default=5000, nullable=False
    )
    payout_term: Mapped[str] = mapped_column(
        String(10), default=PayoutTerm.NET_30.value, nullable=False
    )

    # Product eligibility
    allowed_products: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    excluded_products: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    # Fraud controls
    max_clicks_per_ip_per_hour: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )

    # Discount for referred customers
    referee_discount_type: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )
    referee_discount_value: Mapped[Decimal | None] = mapped_column(
        RatePercentType, nullable=True
    )
    referee_coupon_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<Campaign(id={self.id}, slug={self.slug!r}, "
            f"type={self.commission_type}, value={self.commission_value})>"
        )


class CommissionTier(Base):
    """
    Volume tier: rate applied once an affiliate reaches min_referrals
    conversions.
    """

    __tablename__ = "commission_tiers"
    __table_args__ = (
        UniqueConstraint("campaign_id", "min_referrals", name="uq_tier_campaign_min"),
        CheckConstraint("min_referrals >= 0", name="min_referrals_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    campaign_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("campaigns.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    min_referrals: Mapped[int] = mapped_column(Integer, nullable=False)
    commission_type: Mapped[str] = mapped_column(String(20), nullable=False)
    commission_value: Mapped[Decimal] = mapped_column(RatePercentType, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<CommissionTier(campaign_id={self.campaign_id}, "
            f"min={self.min_referrals}, value={self.commission_value})>"
        )


class ProductCommission(Base):
    """Per-product rate override within a campaign."""

    __tablename__ = "product_commissions"
    __table_args__ = (
        UniqueConstraint(
            "campaign_id", "product_id", name="uq_product_commission_campaign_product"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    campaign_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("campaigns.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    commission_type: Mapped[str] = mapped_column(String(20), nullable=False)
    commission_value: Mapped[Decimal] = mapped_column(RatePercentType, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ProductCommission(campaign_id={self.campaign_id}, "
            f"product={self.product_id!r}, value={self.commission_value})>"
        )
