"""
Commission ledger.

Owns commission status transitions and keeps the affiliate money counters
in step with them. Counters are changed with atomic UPDATE statements and
never drop below zero.
"""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.models.commission import Commission
from affiliates.models.enums import (
    TERMINAL_COMMISSION_STATUSES,
    CommissionStatus,
    LifecycleEventType,
)
from affiliates.repositories.affiliate_repository import AffiliateRepository
from affiliates.repositories.campaign_repository import CampaignRepository
from affiliates.repositories.commission_repository import CommissionRepository
from affiliates.repositories.referral_repository import ReferralRepository
from affiliates.services.base_service import BaseService, transaction
from affiliates.services.commission.calculator import CommissionCalculator
from affiliates.services.commission.eligibility import check_duration, check_product
from affiliates.services.hooks import CommissionCreatedData, CommissionReversedData
from affiliates.services.interfaces import (
    AbstractCommissionCalculator,
    AbstractCommissionLedger,
)
from affiliates.services.outbox import OutboxWriter
from affiliates.services.results import Blocked, BlockReason, Ok
from affiliates.utils.datetime_utils import Clock, utc_now
from affiliates.utils.exceptions import DuplicateError, InvalidStateError, NotFoundError
from affiliates.validators.rates import get_payout_term_delay

# Commission statuses whose amount sits in pending_commissions_cents
PENDING_BUCKET_STATUSES = (
    CommissionStatus.PENDING,
    CommissionStatus.APPROVED,
    CommissionStatus.PROCESSING,
)


class CommissionLedger(BaseService, AbstractCommissionLedger):
    """Commission creation, approval, payment and reversal."""

    def __init__(
        self,
        session: AsyncSession,
        calculator: AbstractCommissionCalculator | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """
        Initialize ledger.

        Args:
            session: Async database session
            calculator: Rate resolver, the database-backed one by default
            clock: Current time source
        """
        super().__init__(session, clock)
        self.affiliates = AffiliateRepository(session)
        self.campaigns = CampaignRepository(session)
        self.commissions = CommissionRepository(session)
        self.referrals = ReferralRepository(session)
        self.calculator = calculator or CommissionCalculator(session, clock)
        self.outbox = OutboxWriter(session)

    def _blocked(self, reason: BlockReason, **context) -> Blocked:
        self.logger.info(
            f"Commission not created: {reason.value}",
            extra={"reason": reason.value, **context},
        )
        return Blocked(reason)

    @transaction
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
        """
        Create a pending commission for a payment.

        A payment event seen before returns its commission as a replay.

        Args:
            affiliate_id: Affiliate earning the commission
            referral_pk: Referral the customer is bound to
            customer_id: Paying customer
            external_event_id: Payment event id, unique per commission
            sale_amount_cents: Amount paid
            currency: ISO currency code
            product_id: Product sold
            charge_id: Charge id used later to match refunds
            subscription_id: Subscription the payment belongs to

        Returns:
            Ok(commission) or Blocked(reason)

        Raises:
            NotFoundError: If affiliate is missing
            DuplicateError: If a concurrent writer created the same commission
        """
        if sale_amount_cents <= 0:
            return self._blocked(
                BlockReason.NON_POSITIVE_AMOUNT, external_event_id=external_event_id
            )

        existing = await self.commissions.get_by_external_event_id(external_event_id)
        if existing:
            return Ok(existing, replayed=True)

        affiliate = await self.affiliates.get_by_id(affiliate_id)
        if not affiliate:
            raise NotFoundError(f"Affiliate {affiliate_id} not found")

        campaign = await self.campaigns.get_by_id(affiliate.campaign_id)
        if not campaign or not campaign.is_active:
            return self._blocked(BlockReason.CAMPAIGN_INACTIVE, affiliate_id=affiliate_id)

        now = self.clock()
        payment_number = None
        if subscription_id:
            prior = await self.commissions.list_for_subscription(subscription_id)
            reason, payment_number = check_duration(campaign, prior, now)
            if reason:
                return self._blocked(
                    reason,
                    affiliate_id=affiliate_id,
                    payment_number=payment_number,
                )

        reason = check_product(campaign, product_id)
        if reason:
            return self._blocked(reason, affiliate_id=affiliate_id, product_id=product_id)

        rate = await self.calculator.resolve_rate(
            affiliate_id, sale_amount_cents, product_id
        )

        try:
            commission = await self.commissions.create(
                affiliate_id=affiliate_id,
                referral_id=referral_pk,
                customer_id=customer_id,
                external_event_id=external_event_id,
                charge_id=charge_id,
                subscription_id=subscription_id,
                product_id=product_id,
                payment_number=payment_number,
                sale_amount_cents=sale_amount_cents,
                commission_amount_cents=rate.amount_cents,
                commission_rate=rate.rate,
                commission_type=rate.commission_type,
                currency=currency.lower(),
                status=CommissionStatus.PENDING.value,
                due_at=now + get_payout_term_delay(campaign.payout_term),
                created_at=now,
            )
        except IntegrityError as e:
            raise DuplicateError(
                f"Commission for event {external_event_id} already exists"
            ) from e

        await self.affiliates.increment_stats(
            affiliate_id,
            total_revenue_cents=sale_amount_cents,
            total_commissions_cents=rate.amount_cents,
            pending_commissions_cents=rate.amount_cents,
        )
        await self.outbox.add(
            LifecycleEventType.COMMISSION_CREATED,
            CommissionCreatedData(
                commission_id=commission.id,
                affiliate_id=affiliate_id,
                affiliate_code=affiliate.code,
                amount_cents=commission.commission_amount_cents,
                currency=commission.currency,
            ),
        )

        self.logger.info(
            "Commission created",
            extra={
                "commission_id": commission.id,
                "affiliate_id": affiliate_id,
                "amount_cents": commission.commission_amount_cents,
                "rate_source": rate.source,
            },
        )
        return Ok(commission)

    @transaction
    async def approve(self, commission_id: int) -> Commission:
        """
        Approve a pending commission.

        Raises:
            NotFoundError: If commission doesn't exist
            InvalidStateError: If commission is not pending
        """
        commission = await self._get_locked(commission_id)
        if commission.status != CommissionStatus.PENDING:
            raise InvalidStateError(
                f"Cannot approve commission with status: {commission.status}"
            )

        commission.status = CommissionStatus.APPROVED.value
        commission.approved_at = self.clock()
        await self.session.flush()

        self.logger.info("Commission approved", extra={"commission_id": commission_id})
        return commission

    @transaction
    async def mark_paid(self, commission_id: int, payout_id: int) -> Commission:
        """
        Mark a commission paid as part of a payout.

        The amount moves from the pending to the paid counter.

        Raises:
            NotFoundError: If commission doesn't exist
            InvalidStateError: If commission is already paid or reversed
        """
        commission = await self._get_locked(commission_id)
        if commission.status in TERMINAL_COMMISSION_STATUSES:
            raise InvalidStateError(
                f"Cannot pay commission with status: {commission.status}"
            )

        commission.status = CommissionStatus.PAID.value
        commission.payout_id = payout_id
        commission.paid_at = self.clock()
        await self.session.flush()

        amount = commission.commission_amount_cents
        await self.affiliates.decrement_stats_clamped(
            commission.affiliate_id, pending_commissions_cents=amount
        )
        await self.affiliates.increment_stats(
            commission.affiliate_id, paid_commissions_cents=amount
        )

        self.logger.info(
            "Commission paid",
            extra={"commission_id": commission_id, "payout_id": payout_id},
        )
        return commission

    @transaction
    async def reverse(self, commission_id: int, reason: str) -> Ok[Commission] | Blocked:
        """
        Reverse a commission after a refund or chargeback.

        The amount leaves the total and the counter the commission sat in
        (pending or paid). Revenue is kept. Reversing twice has no effect.

        Args:
            commission_id: Commission ID
            reason: Reversal reason

        Returns:
            Ok(commission) or Blocked(reason)
        """
        commission = await self.commissions.get_for_update(commission_id)
        if not commission:
            return self._blocked(
                BlockReason.COMMISSION_NOT_FOUND, commission_id=commission_id
            )
        if commission.status == CommissionStatus.REVERSED:
            return Blocked(BlockReason.ALREADY_REVERSED)

        previous_status = commission.status
        amount = commission.commission_amount_cents
        bucket = (
            "paid_commissions_cents"
            if previous_status == CommissionStatus.PAID
            else "pending_commissions_cents"
        )

        commission.status = CommissionStatus.REVERSED.value
        commission.reversed_at = self.clock()
        commission.reversal_reason = reason
        await self.session.flush()

        await self.affiliates.decrement_stats_clamped(
            commission.affiliate_id,
            total_commissions_cents=amount,
            **{bucket: amount},
        )
        await self.outbox.add(
            LifecycleEventType.COMMISSION_REVERSED,
            CommissionReversedData(
                commission_id=commission.id,
                affiliate_id=commission.affiliate_id,
                amount_cents=amount,
                reason=reason,
            ),
        )

        self.logger.info(
            "Commission reversed",
            extra={
                "commission_id": commission_id,
                "previous_status": previous_status,
                "amount_cents": amount,
            },
        )
        return Ok(commission)

    @transaction
    async def recompute_stats(self, affiliate_id: int) -> dict[str, int]:
        """
        Re-derive affiliate counters from referrals and commissions.

        Returns:
            Counters written

        Raises:
            NotFoundError: If affiliate doesn't exist
        """
        affiliate = await self.affiliates.get_by_id(affiliate_id)
        if not affiliate:
            raise NotFoundError(f"Affiliate {affiliate_id} not found")

        sums = await self.commissions.sum_by_status(affiliate_id)
        clicks, signups, conversions = await self.referrals.count_funnel(affiliate_id)

        def commission_sum(*statuses: str) -> int:
            return sum(sums.get(status, (0, 0))[1] for status in statuses)

        stats = {
            "total_clicks": clicks,
            "total_signups": signups,
            "total_conversions": conversions,
            "total_revenue_cents": sum(sale for sale, _ in sums.values()),
            "total_commissions_cents": commission_sum(
                *PENDING_BUCKET_STATUSES, CommissionStatus.PAID
            ),
            "pending_commissions_cents": commission_sum(*PENDING_BUCKET_STATUSES),
            "paid_commissions_cents": commission_sum(CommissionStatus.PAID),
        }
        await self.affiliates.set_stats(affiliate_id, **stats)

        self.logger.info(
            "Affiliate stats recomputed",
            extra={"affiliate_id": affiliate_id, **stats},
        )
        return stats

    async def _get_locked(self, commission_id: int) -> Commission:
        commission = await self.commissions.get_for_update(commission_id)
        if not commission:
            raise NotFoundError(f"Commission {commission_id} not found")
        return commission
