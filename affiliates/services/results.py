"""
Tagged operation results.

Fraud and eligibility checks return Blocked(reason) internally. Public entry
points collapse it to None/False so callers cannot tell why an attempt
failed.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class BlockReason(StrEnum):
    """Why an operation was refused or had no effect."""

    # Affiliate / campaign
    AFFILIATE_NOT_FOUND = "affiliate_not_found"
    AFFILIATE_NOT_APPROVED = "affiliate_not_approved"
    CAMPAIGN_INACTIVE = "campaign_inactive"

    # Click tracking
    VELOCITY_EXCEEDED = "velocity_exceeded"

    # Attribution
    SELF_REFERRAL = "self_referral"
    REFERRAL_NOT_FOUND = "referral_not_found"
    REFERRAL_NOT_CLICKED = "referral_not_clicked"
    REFERRAL_EXPIRED = "referral_expired"
    USER_ALREADY_ATTRIBUTED = "user_already_attributed"
    CUSTOMER_ALREADY_BOUND = "customer_already_bound"
    REFERRAL_HAS_CUSTOMER = "referral_has_customer"
    GUEST_CHECKOUT = "guest_checkout"

    # Commission eligibility
    NON_POSITIVE_AMOUNT = "non_positive_amount"
    NO_REFERRAL_FOR_CUSTOMER = "no_referral_for_customer"
    PRODUCT_EXCLUDED = "product_excluded"
    PRODUCT_NOT_ALLOWED = "product_not_allowed"
    MAX_PAYMENTS_REACHED = "max_payments_reached"
    MAX_MONTHS_REACHED = "max_months_reached"

    # Reversal
    COMMISSION_NOT_FOUND = "commission_not_found"
    ALREADY_REVERSED = "already_reversed"

    # Referee discount
    NO_DISCOUNT = "no_discount"


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Operation took effect (or was an idempotent replay)."""

    value: T = None
    replayed: bool = False

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Blocked:
    """Operation was refused; reason stays internal."""

    reason: BlockReason

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Blocked]


def value_or_none(result: "Ok[Any] | Blocked") -> Any:
    """Collapse a tagged result to its value, or None when blocked."""
    if isinstance(result, Ok):
        return result.value
    return None
