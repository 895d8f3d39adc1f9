"""
Commission math and code generation.

Pure functions, no I/O.
"""

import secrets
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from affiliates.config.constants import (
    AFFILIATE_CODE_ALPHABET,
    AFFILIATE_CODE_LENGTH,
    PAYOUT_TERM_DELAYS,
)
from affiliates.models.enums import CommissionType


def get_payout_term_delay(term: str) -> timedelta:
    """
    Map payout term to the delay before a commission becomes payable.

    Args:
        term: One of NET-0, NET-15, NET-30, NET-60, NET-90

    Returns:
        Delay as timedelta

    Raises:
        ValueError: If term is unknown

    Examples:
        >>> get_payout_term_delay("NET-30")
        datetime.timedelta(days=30)
    """
    try:
        return PAYOUT_TERM_DELAYS[term]
    except KeyError:
        raise ValueError(f"Unknown payout term: {term!r}") from None


def generate_affiliate_code(prefix: str | None = None) -> str:
    """
    Generate a random affiliate code.

    The code is upper-case, AFFILIATE_CODE_LENGTH characters long, and
    starts with the optional prefix. A prefix at least that long is
    returned as is.

    Args:
        prefix: Optional leading characters

    Returns:
        Affiliate code
    """
    code = prefix.upper() if prefix else ""
    missing = AFFILIATE_CODE_LENGTH - len(code)
    if missing > 0:
        code += "".join(
            secrets.choice(AFFILIATE_CODE_ALPHABET) for _ in range(missing)
        )
    return code


def calculate_commission_amount(
    sale_amount_cents: int,
    commission_type: str,
    commission_value: Decimal | int | float,
) -> int:
    """
    Calculate commission in cents.

    percentage: sale * value / 100, rounded half up to whole cents.
    fixed: value itself, in cents.

    Args:
        sale_amount_cents: Sale amount in cents
        commission_type: "percentage" or "fixed"
        commission_value: Percent (0-100) or cents

    Returns:
        Commission amount in cents

    Examples:
        >>> calculate_commission_amount(10000, "percentage", 20)
        2000
        >>> calculate_commission_amount(999, "percentage", Decimal("12.5"))
        125
        >>> calculate_commission_amount(10000, "fixed", 500)
        500
    """
    value = Decimal(str(commission_value))
    if commission_type == CommissionType.PERCENTAGE:
        amount = Decimal(sale_amount_cents) * value / Decimal(100)
    elif commission_type == CommissionType.FIXED:
        amount = value
    else:
        raise ValueError(f"Unknown commission type: {commission_type!r}")
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))
