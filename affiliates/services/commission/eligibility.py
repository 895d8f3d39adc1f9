"""
Commission eligibility rules.

Campaign duration policy and product allow/deny lists. A failed rule means
"no commission", never an error.
"""

from datetime import datetime

from affiliates.config.constants import (
    COMMISSION_MONTH,
    DEFAULT_MAX_MONTHS,
    DEFAULT_MAX_PAYMENTS,
)
from affiliates.models.campaign import Campaign
from affiliates.models.commission import Commission
from affiliates.models.enums import CommissionDuration
from affiliates.services.results import BlockReason


def check_product(campaign: Campaign, product_id: str | None) -> BlockReason | None:
    """
    Check product against campaign allow/deny lists.

    An empty allow list means every product is allowed. The deny list wins.

    Args:
        campaign: Affiliate's campaign
        product_id: Product sold, if known

    Returns:
        Block reason or None when eligible
    """
    if product_id is None:
        return None
    if campaign.excluded_products and product_id in campaign.excluded_products:
        return BlockReason.PRODUCT_EXCLUDED
    if campaign.allowed_products and product_id not in campaign.allowed_products:
        return BlockReason.PRODUCT_NOT_ALLOWED
    return None


def check_duration(
    campaign: Campaign,
    prior_commissions: list[Commission],
    now: datetime,
) -> tuple[BlockReason | None, int]:
    """
    Check subscription payment against campaign duration policy.

    max_payments: the Nth payment earns only while N <= bound (default 1).
    max_months: payments earn while fewer than bound 30-day months have
    passed since the subscription's first commission (default 12).

    Args:
        campaign: Affiliate's campaign
        prior_commissions: Earlier commissions of the subscription, oldest first
        now: Current time

    Returns:
        (block reason or None, payment number of this payment)
    """
    payment_number = len(prior_commissions) + 1
    duration = campaign.commission_duration

    if duration == CommissionDuration.MAX_PAYMENTS:
        max_payments = campaign.commission_duration_value or DEFAULT_MAX_PAYMENTS
        if payment_number > max_payments:
            return BlockReason.MAX_PAYMENTS_REACHED, payment_number

    elif duration == CommissionDuration.MAX_MONTHS and prior_commissions:
        max_months = campaign.commission_duration_value or DEFAULT_MAX_MONTHS
        months_elapsed = (now - prior_commissions[0].created_at) // COMMISSION_MONTH
        if months_elapsed >= max_months:
            return BlockReason.MAX_MONTHS_REACHED, payment_number

    return None, payment_number
