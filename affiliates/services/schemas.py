"""Data containers passed between services and callers."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

__all__ = [
    "ClickMetadata",
    "RateResolution",
    "RefereeDiscount",
    "CodeValidation",
    "PayoutCandidate",
    "ConversionFunnel",
    "AdminDashboard",
    "PortalData",
]


@dataclass
class ClickMetadata:
    """Request details captured with a click.

    Attributes:
        ip_address: Client address, hashed before storage.
        utm_source: Marketing source parameter.
        utm_medium: Marketing medium parameter.
        utm_campaign: Marketing campaign parameter.
        sub_id: Affiliate's own sub-tracking id.
        device_type: Client device class.
        country: ISO country code.
    """
    ip_address: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    sub_id: str | None = None
    device_type: str | None = None
    country: str | None = None


@dataclass(frozen=True)
class RateResolution:
    """Rate chosen for a sale and the resulting amount.

    Attributes:
        rate: Percent or cents, depending on commission_type.
        commission_type: "percentage" or "fixed".
        amount_cents: Commission amount.
        source: Which rule supplied the rate
            (custom, product, tier or campaign).
    """
    rate: Decimal
    commission_type: str
    amount_cents: int
    source: str


@dataclass(frozen=True)
class RefereeDiscount:
    """Discount offered to a customer referred by an affiliate."""
    discount_type: str
    discount_value: Decimal
    coupon_id: str | None
    affiliate_code: str
    affiliate_display_name: str | None


@dataclass(frozen=True)
class CodeValidation:
    """Public answer to "is this affiliate code usable"."""
    code: str
    display_name: str | None
    valid: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "displayName": self.display_name,
            "valid": self.valid,
        }


@dataclass
class PayoutCandidate:
    """Affiliate whose due commissions meet the payout threshold."""
    affiliate_id: int
    total_due_cents: int
    commission_count: int
    min_payout_cents: int
    commission_ids: list[int] = field(default_factory=list)


@dataclass
class ConversionFunnel:
    """Click to signup to conversion rates, in percent, 2 decimals."""
    clicks: int
    signups: int
    conversions: int
    click_to_signup_rate: float
    signup_to_conversion_rate: float
    overall_conversion_rate: float


@dataclass
class AdminDashboard:
    """Program-wide totals for administrators."""
    total_affiliates: int
    pending_approvals: int
    active_affiliates: int
    total_clicks: int
    total_signups: int
    total_conversions: int
    total_revenue_cents: int
    total_commissions_cents: int
    pending_commissions_cents: int
    paid_commissions_cents: int
    pending_payouts_cents: int
    pending_payouts_count: int
    active_campaigns: int


@dataclass
class PortalData:
    """Everything the affiliate portal shows to its owner.

    Attributes:
        affiliate: The caller's affiliate.
        campaign: Campaign the affiliate is enrolled in.
        recent_commissions: Latest commissions, newest first.
        pending_payout_cents: Sum of pending and approved commissions.
        pending_payout_count: Number of pending and approved commissions.
    """
    affiliate: Any
    campaign: Any
    recent_commissions: list[Any]
    pending_payout_cents: int
    pending_payout_count: int
