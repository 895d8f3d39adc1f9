"""
Affiliate model.

One affiliate per host user, enrolled in a campaign, with aggregate stats
kept in minor units.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from affiliates.models.base import Base
from affiliates.models.enums import AffiliateStatus
from affiliates.models.types import CentsType, RatePercentType, UTCDateTime
from affiliates.utils.datetime_utils import utc_now

# Aggregate counters, all non-negative
STAT_COLUMNS = (
    "total_clicks",
    "total_signups",
    "total_conversions",
    "total_revenue_cents",
    "total_commissions_cents",
    "pending_commissions_cents",
    "paid_commissions_cents",
)


class Affiliate(Base):
    """
    Affiliate entity.

    Stats are mutated only through atomic UPDATE statements issued by the
    referral tracker and the commission ledger.

    Attributes:
        id: Primary key
        user_id: Host user id (unique)
        campaign_id: Enrolled campaign
        code: Unique upper-case referral code
        email: Contact email
        display_name: Public name shown on code validation
        bio, website, socials: Profile fields
        custom_commission_type: Override of every campaign rate
        custom_commission_value: Percent or cents
        payout_method: manual, bank_transfer, paypal or other
        payout_email: Where payouts are sent
        status: pending, approved, rejected or suspended
        total_*: Aggregate stats
        approved_at: When admin approved the affiliate
    """

    __tablename__ = "affiliates"
    __table_args__ = (
        Index("ix_affiliates_campaign_status", "campaign_id", "status"),
        *(
            CheckConstraint(f"{column} >= 0", name=f"{column}_non_negative")
            for column in STAT_COLUMNS
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    campaign_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("campaigns.id"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    # Profile
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)
    socials: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Commission override
    custom_commission_type: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )
    custom_commission_value: Mapped[Decimal | None] = mapped_column(
        RatePercentType, nullable=True
    )

    # Payouts
    payout_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payout_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), default=AffiliateStatus.PENDING.value, nullable=False, index=True
    )

    # Stats
    total_clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_signups: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_conversions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_revenue_cents: Mapped[int] = mapped_column(
        CentsType, default=0, nullable=False
    )
    total_commissions_cents: Mapped[int] = mapped_column(
        CentsType, default=0, nullable=False
    )
    pending_commissions_cents: Mapped[int] = mapped_column(
        CentsType, default=0, nullable=False
    )
    paid_commissions_cents: Mapped[int] = mapped_column(
        CentsType, default=0, nullable=False
    )

    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    @property
    def is_approved(self) -> bool:
        return self.status == AffiliateStatus.APPROVED

    def __repr__(self) -> str:
        return (
            f"<Affiliate(id={self.id}, code={self.code!r}, "
            f"status={self.status})>"
        )
