"""
Referral services.

Click tracking, attribution and referral queries.
"""

from affiliates.services.referral.attribution import AttributionResolver
from affiliates.services.referral.query_manager import ReferralQueryManager
from affiliates.services.referral.tracker import ReferralTracker
from affiliates.services.referral.velocity import (
    DatabaseClickVelocityGuard,
    RedisClickVelocityGuard,
)

__all__ = [
    "AttributionResolver",
    "DatabaseClickVelocityGuard",
    "RedisClickVelocityGuard",
    "ReferralQueryManager",
    "ReferralTracker",
]
