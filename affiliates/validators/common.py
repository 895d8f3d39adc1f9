"""
Common validators for user input.

Each validator returns a tuple of (is_valid, parsed_value, error_message).
"""

import re
from decimal import Decimal, InvalidOperation

from affiliates.config.constants import AFFILIATE_CODE_MAX_LENGTH
from affiliates.models.enums import CommissionType

CODE_PATTERN = re.compile(r"^[A-Z0-9_-]+$")
SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
MIN_CODE_LENGTH = 3


def normalize_code(value: str | None) -> str:
    """Strip and upper-case an affiliate code."""
    return (value or "").strip().upper()


def validate_affiliate_code(value: str) -> tuple[bool, str | None, str | None]:
    """
    Validate custom affiliate code.

    Examples:
        >>> validate_affiliate_code(" john20 ")
        (True, 'JOHN20', None)
        >>> validate_affiliate_code("a b")
        (False, None, 'Code may contain only letters, digits, "-" and "_"')
    """
    code = normalize_code(value)
    if len(code) < MIN_CODE_LENGTH:
        return False, None, f"Code must be at least {MIN_CODE_LENGTH} characters"
    if len(code) > AFFILIATE_CODE_MAX_LENGTH:
        return (
            False,
            None,
            f"Code must be at most {AFFILIATE_CODE_MAX_LENGTH} characters",
        )
    if not CODE_PATTERN.match(code):
        return False, None, 'Code may contain only letters, digits, "-" and "_"'
    return True, code, None


def validate_slug(value: str) -> tuple[bool, str | None, str | None]:
    """
    Validate campaign slug.

    Examples:
        >>> validate_slug("spring-sale")
        (True, 'spring-sale', None)
        >>> validate_slug("Spring Sale")
        (False, None, 'Slug must be lower-case words separated by "-"')
    """
    slug = (value or "").strip()
    if not slug:
        return False, None, "Slug cannot be empty"
    if not SLUG_PATTERN.match(slug):
        return False, None, 'Slug must be lower-case words separated by "-"'
    return True, slug, None


def validate_commission_value(
    commission_type: str, value: Decimal | int | float | str
) -> tuple[bool, Decimal | None, str | None]:
    """
    Validate commission rate for its type.

    Percentages must be within 0-100, fixed amounts non-negative.
    """
    if commission_type not in (CommissionType.PERCENTAGE, CommissionType.FIXED):
        return False, None, f"Unknown commission type: {commission_type}"
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return False, None, "Commission value must be a number"
    if not rate.is_finite():
        return False, None, "Commission value must be a number"
    if rate < 0:
        return False, None, "Commission value cannot be negative"
    if commission_type == CommissionType.PERCENTAGE and rate > 100:
        return False, None, "Percentage commission cannot exceed 100"
    return True, rate, None
