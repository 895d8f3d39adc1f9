"""
Data access layer.
"""

from affiliates.repositories.affiliate_repository import AffiliateRepository
from affiliates.repositories.analytics_event_repository import (
    AnalyticsEventRepository,
)
from affiliates.repositories.base import BaseRepository
from affiliates.repositories.campaign_repository import (
    CampaignRepository,
    CommissionTierRepository,
    ProductCommissionRepository,
)
from affiliates.repositories.commission_repository import (
    CommissionRepository,
    DueTotal,
)
from affiliates.repositories.outbox_repository import OutboxRepository
from affiliates.repositories.payout_repository import PayoutRepository
from affiliates.repositories.referral_repository import ReferralRepository

__all__ = [
    "AffiliateRepository",
    "AnalyticsEventRepository",
    "BaseRepository",
    "CampaignRepository",
    "CommissionRepository",
    "CommissionTierRepository",
    "DueTotal",
    "OutboxRepository",
    "PayoutRepository",
    "ProductCommissionRepository",
    "ReferralRepository",
]
