"""Abstract interfaces of the engine components.

Each component is consumed through its interface so implementations can be
replaced or mocked in isolation.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from affiliates.models.commission import Commission
from affiliates.models.payout import Payout
from affiliates.models.referral import Referral
from affiliates.services.results import Blocked, Ok
from affiliates.services.schemas import ClickMetadata, PayoutCandidate, RateResolution

__all__ = [
    "AbstractReferralTracker",
    "AbstractAttributionResolver",
    "AbstractCommissionCalculator",
    "AbstractCommissionLedger",
    "AbstractPayoutAggregator",
    "AbstractClickVelocityGuard",
]


class AbstractClickVelocityGuard(ABC):
    """Limits clicks accepted from one network address."""

    @abstractmethod
    async def allow(self, ip_hash: str, limit: int, now: datetime) -> bool:
        """Record a click attempt and report whether it is within the limit."""


class AbstractReferralTracker(ABC):
    """Records clicks and expires stale referrals."""

    @abstractmethod
    async def track_click(
        self,
        affiliate_code: str,
        landing_page: str,
        metadata: ClickMetadata | None = None,
    ) -> Ok[Referral] | Blocked:
        """Create a clicked referral for an approved affiliate."""

    @abstractmethod
    async def expire_referrals(self, batch_size: int | None = None) -> int:
        """Expire clicked referrals past their window; return how many."""

    @abstractmethod
    async def convert_referral(self, referral: Referral) -> bool:
        """Mark referral converted once; return True on first conversion."""


class AbstractAttributionResolver(ABC):
    """Binds users and payment customers to referrals."""

    @abstractmethod
    async def attribute_signup(
        self, referral_id: str, user_id: str
    ) -> Ok[Referral] | Blocked:
        """Bind a signed-up user to a tracked referral."""

    @abstractmethod
    async def attribute_signup_by_code(
        self, affiliate_code: str, user_id: str
    ) -> Ok[Referral] | Blocked:
        """Create a signed-up referral for a user from an affiliate code."""

    @abstractmethod
    async def link_customer(
        self,
        customer_id: str,
        user_id: str | None = None,
        affiliate_code: str | None = None,
    ) -> Ok[Referral] | Blocked:
        """Bind a payment customer to the user's referral."""


class AbstractCommissionCalculator(ABC):
    """Resolves the commission rate for a sale."""

    @abstractmethod
    async def resolve_rate(
        self,
        affiliate_id: int,
        sale_amount_cents: int,
        product_id: str | None = None,
    ) -> RateResolution:
        """Apply custom, product, tier and campaign rates in that order."""


class AbstractCommissionLedger(ABC):
    """Owns commission state and the affiliate money counters."""

    @abstractmethod
    async def create(
        self,
        *,
        affiliate_id: int,
        referral_pk: int,
        customer_id: str,
        external_event_id: str,
        sale_amount_cents: int,
        currency: str,
        product_id: str | None = None,
        charge_id: str | None = None,
        subscription_id: str | None = None,
    ) -> Ok[Commission] | Blocked:
        """Create a pending commission if the sale is eligible."""

    @abstractmethod
    async def approve(self, commission_id: int) -> Commission:
        """Move a pending commission to approved."""

    @abstractmethod
    async def mark_paid(self, commission_id: int, payout_id: int) -> Commission:
        """Move a non-terminal commission to paid."""

    @abstractmethod
    async def reverse(
        self, commission_id: int, reason: str
    ) -> Ok[Commission] | Blocked:
        """Reverse a commission; reversing twice is a no-op."""

    @abstractmethod
    async def recompute_stats(self, affiliate_id: int) -> dict[str, int]:
        """Re-derive the affiliate counters from referrals and commissions."""


class AbstractPayoutAggregator(ABC):
    """Batches due commissions into payouts."""

    @abstractmethod
    async def get_due_commissions(self, affiliate_id: int) -> list[Commission]:
        """Approved commissions whose due date has passed."""

    @abstractmethod
    async def get_affiliates_due_for_payout(
        self, min_payout_cents: int | None = None
    ) -> list[PayoutCandidate]:
        """Affiliates whose due total meets the payout threshold."""

    @abstractmethod
    async def create_payout(
        self, affiliate_id: int, commission_ids: list[int]
    ) -> Payout:
        """Create a pending payout for the given commissions."""

    @abstractmethod
    async def complete_payout(self, payout_id: int) -> Payout:
        """Complete a payout and mark its commissions paid."""

    @abstractmethod
    async def cancel_payout(self, payout_id: int, notes: str | None = None) -> Payout:
        """Cancel a pending payout and release its commissions."""
