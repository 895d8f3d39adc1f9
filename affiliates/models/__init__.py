"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from affiliates.models.affiliate import Affiliate
from affiliates.models.analytics_event import AnalyticsEvent
from affiliates.models.base import Base
from affiliates.models.campaign import Campaign, CommissionTier, ProductCommission
from affiliates.models.commission import Commission
from affiliates.models.enums import (
    AffiliateStatus,
    AnalyticsEventType,
    CommissionDuration,
    CommissionStatus,
    CommissionType,
    DiscountType,
    LifecycleEventType,
    PayoutMethod,
    PayoutStatus,
    PayoutTerm,
    ReferralStatus,
)
from affiliates.models.outbox_event import OutboxEvent
from affiliates.models.payout import Payout
from affiliates.models.referral import Referral

__all__ = [
    "Affiliate",
    "AffiliateStatus",
    "AnalyticsEvent",
    "AnalyticsEventType",
    "Base",
    "Campaign",
    "Commission",
    "CommissionDuration",
    "CommissionStatus",
    "CommissionTier",
    "CommissionType",
    "DiscountType",
    "LifecycleEventType",
    "OutboxEvent",
    "Payout",
    "PayoutMethod",
    "PayoutStatus",
    "PayoutTerm",
    "ProductCommission",
    "Referral",
    "ReferralStatus",
]
