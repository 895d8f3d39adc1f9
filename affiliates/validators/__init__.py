"""
Validators and pure commission math.
"""

from affiliates.validators.common import (
    normalize_code,
    validate_affiliate_code,
    validate_commission_value,
    validate_slug,
)
from affiliates.validators.rates import (
    calculate_commission_amount,
    generate_affiliate_code,
    get_payout_term_delay,
)

__all__ = [
    "calculate_commission_amount",
    "generate_affiliate_code",
    "get_payout_term_delay",
    "normalize_code",
    "validate_affiliate_code",
    "validate_commission_value",
    "validate_slug",
]
