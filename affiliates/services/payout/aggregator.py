"""
Payout aggregator.

Batches approved, due commissions into payouts and settles or cancels them.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.models.commission import Commission
from affiliates.models.enums import (
    TERMINAL_COMMISSION_STATUSES,
    AnalyticsEventType,
    CommissionStatus,
    PayoutMethod,
    PayoutStatus,
)
from affiliates.models.payout import Payout
from affiliates.repositories.affiliate_repository import AffiliateRepository
from affiliates.repositories.campaign_repository import CampaignRepository
from affiliates.repositories.commission_repository import CommissionRepository
from affiliates.repositories.payout_repository import PayoutRepository
from affiliates.services.analytics_service import AnalyticsService
from affiliates.services.base_service import BaseService, log_operation, transaction
from affiliates.services.commission.ledger import CommissionLedger
from affiliates.services.interfaces import (
    AbstractCommissionLedger,
    AbstractPayoutAggregator,
)
from affiliates.services.schemas import PayoutCandidate
from affiliates.utils.datetime_utils import Clock, utc_now
from affiliates.utils.exceptions import InvalidStateError, NotFoundError
from affiliates.utils.pagination import Page


class PayoutAggregator(BaseService, AbstractPayoutAggregator):
    """Payout batching and settlement."""

    def __init__(
        self,
        session: AsyncSession,
        ledger: AbstractCommissionLedger | None = None,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(session, clock)
        self.affiliates = AffiliateRepository(session)
        self.campaigns = CampaignRepository(session)
        self.commissions = CommissionRepository(session)
        self.payouts = PayoutRepository(session)
        self.analytics = AnalyticsService(session, clock)
        self.ledger = ledger or CommissionLedger(session, clock=clock)

    async def get_due_commissions(self, affiliate_id: int) -> list[Commission]:
        """Get approved commissions past their due date, oldest first."""
        return await self.commissions.get_due(affiliate_id, self.clock())

    async def get_affiliates_due_for_payout(
        self, min_payout_cents: int | None = None
    ) -> list[PayoutCandidate]:
        """
        Find affiliates whose due total meets the payout minimum.

        Args:
            min_payout_cents: Minimum for everyone; each affiliate's campaign
                minimum applies when omitted

        Returns:
            Candidates with the commission ids to batch
        """
        now = self.clock()
        campaign_minimums: dict[int, int] = {}
        candidates = []

        for due in await self.commissions.get_due_totals(now):
            threshold = min_payout_cents
            if threshold is None:
                affiliate = await self.affiliates.get_by_id(due.affiliate_id)
                if affiliate.campaign_id not in campaign_minimums:
                    campaign = await self.campaigns.get_by_id(affiliate.campaign_id)
                    campaign_minimums[affiliate.campaign_id] = campaign.min_payout_cents
                threshold = campaign_minimums[affiliate.campaign_id]

            if due.total_due_cents < threshold:
                continue

            commissions = await self.commissions.get_due(due.affiliate_id, now)
            candidates.append(
                PayoutCandidate(
                    affiliate_id=due.affiliate_id,
                    total_due_cents=due.total_due_cents,
                    commission_count=due.commission_count,
                    min_payout_cents=threshold,
                    commission_ids=[c.id for c in commissions],
                )
            )
        return candidates

    @transaction
    async def create_payout(
        self, affiliate_id: int, commission_ids: list[int]
    ) -> Payout:
        """
        Create a pending payout for a batch of commissions.

        Approved commissions of the affiliate in the batch move to
        processing and are linked to the payout.

        Args:
            affiliate_id: Affiliate being paid
            commission_ids: Commissions to batch

        Returns:
            Created payout

        Raises:
            NotFoundError: If affiliate doesn't exist
            InvalidStateError: If no approved commission is in the batch
        """
        affiliate = await self.affiliates.get_by_id(affiliate_id)
        if not affiliate:
            raise NotFoundError(f"Affiliate {affiliate_id} not found")

        batch = [
            c
            for c in await self.commissions.get_many(commission_ids)
            if c.affiliate_id == affiliate_id and c.status == CommissionStatus.APPROVED
        ]
        if not batch:
            raise InvalidStateError(
                f"No approved commissions to pay for affiliate {affiliate_id}"
            )

        payout = await self.payouts.create(
            affiliate_id=affiliate_id,
            amount_cents=sum(c.commission_amount_cents for c in batch),
            currency=batch[0].currency,
            method=affiliate.payout_method or PayoutMethod.MANUAL.value,
            commissions_count=len(batch),
            period_start=min(c.created_at for c in batch),
            period_end=max(c.created_at for c in batch),
            status=PayoutStatus.PENDING.value,
            created_at=self.clock(),
        )
        moved = await self.commissions.assign_to_payout([c.id for c in batch], payout.id)
        if moved != len(batch):
            raise InvalidStateError(
                f"Commissions of payout {payout.id} changed while batching"
            )

        self.logger.info(
            "Payout created",
            extra={
                "payout_id": payout.id,
                "affiliate_id": affiliate_id,
                "amount_cents": payout.amount_cents,
                "commissions_count": payout.commissions_count,
            },
        )
        return payout

    @transaction
    async def complete_payout(self, payout_id: int) -> Payout:
        """
        Complete a pending payout and mark its commissions paid.

        Amount and count are restated from the commissions actually paid,
        so a commission reversed while the payout was pending is excluded.

        Raises:
            NotFoundError: If payout doesn't exist
            InvalidStateError: If payout is not pending
        """
        payout = await self._get_pending(payout_id, "complete")

        paid = 0
        paid_cents = 0
        for commission in await self.commissions.list_by_payout(payout_id):
            if commission.status in TERMINAL_COMMISSION_STATUSES:
                continue
            commission = await self.ledger.mark_paid(commission.id, payout_id)
            paid += 1
            paid_cents += commission.commission_amount_cents

        if paid_cents != payout.amount_cents:
            self.logger.warning(
                f"Payout {payout_id} restated from {payout.amount_cents} "
                f"to {paid_cents} cents"
            )
        payout.amount_cents = paid_cents
        payout.commissions_count = paid
        payout.status = PayoutStatus.COMPLETED.value
        payout.completed_at = self.clock()
        await self.session.flush()

        await self.analytics.record_event(
            payout.affiliate_id,
            AnalyticsEventType.PAYOUT,
            {
                "payout_id": payout.id,
                "amount_cents": payout.amount_cents,
                "commissions_paid": paid,
            },
        )

        self.logger.info(
            "Payout completed",
            extra={"payout_id": payout_id, "commissions_paid": paid},
        )
        return payout

    @transaction
    async def cancel_payout(self, payout_id: int, notes: str | None = None) -> Payout:
        """
        Cancel a pending payout.

        Commissions still processing return to approved and lose their
        payout link, so the next batch picks them up again.

        Raises:
            NotFoundError: If payout doesn't exist
            InvalidStateError: If payout is not pending
        """
        payout = await self._get_pending(payout_id, "cancel")

        released = await self.commissions.release_from_payout(payout_id)
        payout.status = PayoutStatus.CANCELLED.value
        payout.notes = notes
        await self.session.flush()

        self.logger.info(
            "Payout cancelled",
            extra={"payout_id": payout_id, "commissions_released": released},
        )
        return payout

    @log_operation
    async def process_due_payouts(
        self, min_payout_cents: int | None = None
    ) -> list[Payout]:
        """
        Create one payout per affiliate due for payment.

        Each payout commits on its own; an affiliate whose batch changed
        underneath is skipped until the next run.

        Returns:
            Created payouts
        """
        created = []
        for candidate in await self.get_affiliates_due_for_payout(min_payout_cents):
            try:
                payout = await self.create_payout(
                    candidate.affiliate_id, candidate.commission_ids
                )
            except InvalidStateError as e:
                self.logger.warning(
                    "Payout skipped",
                    extra={"affiliate_id": candidate.affiliate_id, "error": str(e)},
                )
                continue
            created.append(payout)
        return created

    async def list_payouts(
        self,
        affiliate_id: int | None = None,
        status: str | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[Payout]:
        """List payouts newest first."""
        return await self.payouts.list_payouts(
            affiliate_id=affiliate_id, status=status, limit=limit, cursor=cursor
        )

    async def _get_pending(self, payout_id: int, action: str) -> Payout:
        payout = await self.payouts.get_for_update(payout_id)
        if not payout:
            raise NotFoundError(f"Payout {payout_id} not found")
        if payout.status != PayoutStatus.PENDING:
            raise InvalidStateError(
                f"Cannot {action} payout with status: {payout.status}"
            )
        return payout
