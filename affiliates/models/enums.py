"""
Shared enumerations.
"""

from enum import StrEnum


class CommissionType(StrEnum):
    """How a commission rate is applied."""

    PERCENTAGE = "percentage"  # Percent of sale amount
    FIXED = "fixed"  # Flat amount in cents


class CommissionDuration(StrEnum):
    """How long a referred customer keeps generating commissions."""

    LIFETIME = "lifetime"
    MAX_PAYMENTS = "max_payments"
    MAX_MONTHS = "max_months"


class PayoutTerm(StrEnum):
    """Delay between commission creation and payout eligibility."""

    NET_0 = "NET-0"
    NET_15 = "NET-15"
    NET_30 = "NET-30"
    NET_60 = "NET-60"
    NET_90 = "NET-90"


class DiscountType(StrEnum):
    """Referee discount kind."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"


class AffiliateStatus(StrEnum):
    """Affiliate lifecycle status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class ReferralStatus(StrEnum):
    """Referral lifecycle status."""

    CLICKED = "clicked"
    SIGNED_UP = "signed_up"
    CONVERTED = "converted"
    EXPIRED = "expired"


class CommissionStatus(StrEnum):
    """Commission lifecycle status."""

    PENDING = "pending"
    APPROVED = "approved"
    PROCESSING = "processing"  # Batched into a payout
    PAID = "paid"
    REVERSED = "reversed"


TERMINAL_COMMISSION_STATUSES = frozenset(
    {CommissionStatus.PAID, CommissionStatus.REVERSED}
)


class PayoutStatus(StrEnum):
    """Payout lifecycle status."""

    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AnalyticsEventType(StrEnum):
    """Append-only analytics event kinds."""

    CLICK = "click"
    SIGNUP = "signup"
    CONVERSION = "conversion"
    REFUND = "refund"
    PAYOUT = "payout"


class LifecycleEventType(StrEnum):
    """Outbox event kinds delivered to lifecycle hooks."""

    AFFILIATE_REGISTERED = "affiliate.registered"
    AFFILIATE_APPROVED = "affiliate.approved"
    AFFILIATE_REJECTED = "affiliate.rejected"
    AFFILIATE_SUSPENDED = "affiliate.suspended"
    COMMISSION_CREATED = "commission.created"
    COMMISSION_REVERSED = "commission.reversed"
    CUSTOMER_LINKED = "customer.linked"


class PayoutMethod(StrEnum):
    """How a payout is delivered to the affiliate."""

    MANUAL = "manual"
    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"
    OTHER = "other"
