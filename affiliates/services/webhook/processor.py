"""
Payment webhook processor.

Verifies signed payment events and routes them to attribution, the
commission ledger and the referral tracker. Events are safe to redeliver:
a payment seen before returns its existing commission and a refund of a
reversed commission does nothing.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.config.constants import WEBHOOK_TOLERANCE_SECONDS
from affiliates.models.enums import AnalyticsEventType
from affiliates.repositories.affiliate_repository import AffiliateRepository
from affiliates.repositories.commission_repository import CommissionRepository
from affiliates.repositories.referral_repository import ReferralRepository
from affiliates.services.analytics_service import AnalyticsService
from affiliates.services.base_service import BaseService, transaction
from affiliates.services.commission.ledger import CommissionLedger
from affiliates.services.interfaces import (
    AbstractAttributionResolver,
    AbstractCommissionLedger,
    AbstractReferralTracker,
)
from affiliates.services.referral.attribution import AttributionResolver
from affiliates.services.referral.tracker import ReferralTracker
from affiliates.services.results import Blocked, BlockReason, Ok
from affiliates.services.webhook.events import (
    CheckoutCompleted,
    PaymentRefunded,
    PaymentSucceeded,
    parse_event,
)
from affiliates.services.webhook.signature import verify_signature
from affiliates.utils.datetime_utils import Clock, utc_now
from affiliates.utils.exceptions import DuplicateError
from affiliates.utils.security import mask_customer_id

DEFAULT_REFUND_REASON = "Charge refunded"


class WebhookProcessor(BaseService):
    """Signed payment event handling."""

    def __init__(
        self,
        session: AsyncSession,
        webhook_secret: str,
        tolerance_seconds: int = WEBHOOK_TOLERANCE_SECONDS,
        ledger: AbstractCommissionLedger | None = None,
        tracker: AbstractReferralTracker | None = None,
        attribution: AbstractAttributionResolver | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """
        Initialize processor.

        Args:
            session: Async database session shared with the components
            webhook_secret: Shared HMAC secret
            tolerance_seconds: Accepted signature age
            ledger: Commission ledger
            tracker: Referral tracker (conversion)
            attribution: Attribution resolver (customer linking)
            clock: Current time source
        """
        super().__init__(session, clock)
        self.webhook_secret = webhook_secret
        self.tolerance_seconds = tolerance_seconds
        self.affiliates = AffiliateRepository(session)
        self.commissions = CommissionRepository(session)
        self.referrals = ReferralRepository(session)
        self.analytics = AnalyticsService(session, clock)
        self.ledger = ledger or CommissionLedger(session, clock=clock)
        self.tracker = tracker or ReferralTracker(session, clock=clock)
        self.attribution = attribution or AttributionResolver(session, clock)

    async def process(
        self, raw_body: bytes, signature_header: str | None
    ) -> Ok | Blocked | None:
        """
        Verify and handle one webhook delivery.

        Args:
            raw_body: Request body exactly as received
            signature_header: Signature header value

        Returns:
            Outcome of the handled event, None for ignored event types

        Raises:
            WebhookSignatureError: If signature is missing or invalid
            WebhookPayloadError: If signed body is malformed
        """
        verify_signature(
            raw_body,
            signature_header,
            self.webhook_secret,
            self.clock(),
            self.tolerance_seconds,
        )
        envelope, data = parse_event(raw_body)

        self.logger.info(
            "Webhook received",
            extra={"event_id": envelope.id, "event_type": envelope.type},
        )

        if isinstance(data, CheckoutCompleted):
            return await self.attribution.link_customer(
                data.customer_id, data.user_id, data.affiliate_code
            )
        if isinstance(data, PaymentSucceeded):
            return await self.handle_payment_succeeded(data)
        if isinstance(data, PaymentRefunded):
            return await self.handle_payment_refunded(data)

        self.logger.debug(
            "Webhook event type ignored", extra={"event_type": envelope.type}
        )
        return None

    async def handle_payment_succeeded(self, event: PaymentSucceeded) -> Ok | Blocked:
        """
        Create the commission for a payment by a referred customer.

        A concurrent delivery of the same payment loses the insert race
        and returns the winner's commission.
        """
        try:
            return await self._create_commission(event)
        except DuplicateError:
            existing = await self.commissions.get_by_external_event_id(event.payment_id)
            if existing is None:
                raise
            self.logger.info(
                "Duplicate payment delivery",
                extra={"payment_id": event.payment_id, "commission_id": existing.id},
            )
            return Ok(existing, replayed=True)

    @transaction
    async def _create_commission(self, event: PaymentSucceeded) -> Ok | Blocked:
        referral = await self.referrals.get_by_customer_id(event.customer_id)
        if not referral:
            self.logger.debug(
                "Payment from unattributed customer",
                extra={"customer": mask_customer_id(event.customer_id)},
            )
            return Blocked(BlockReason.NO_REFERRAL_FOR_CUSTOMER)

        affiliate = await self.affiliates.get_by_id(referral.affiliate_id)
        if not affiliate or not affiliate.is_approved:
            self.logger.info(
                "Payment skipped: affiliate not approved",
                extra={"referral_pk": referral.id},
            )
            return Blocked(BlockReason.AFFILIATE_NOT_APPROVED)
        if referral.user_id is not None and referral.user_id == affiliate.user_id:
            self.logger.warning(
                "Payment skipped: self-referral",
                extra={"affiliate_id": affiliate.id},
            )
            return Blocked(BlockReason.SELF_REFERRAL)

        result = await self.ledger.create(
            affiliate_id=affiliate.id,
            referral_pk=referral.id,
            customer_id=event.customer_id,
            external_event_id=event.payment_id,
            sale_amount_cents=event.amount_cents,
            currency=event.currency,
            product_id=event.product_id,
            charge_id=event.charge_id,
            subscription_id=event.subscription_id,
        )
        if not isinstance(result, Ok) or result.replayed:
            return result

        await self.tracker.convert_referral(referral)
        await self.analytics.record_event(
            affiliate.id,
            AnalyticsEventType.CONVERSION,
            {
                "payment_id": event.payment_id,
                "amount_cents": event.amount_cents,
                "commission_cents": result.value.commission_amount_cents,
            },
        )
        return result

    @transaction
    async def handle_payment_refunded(self, event: PaymentRefunded) -> Ok | Blocked:
        """Reverse the commission created for a refunded charge."""
        commission = await self.commissions.get_by_charge_id(event.charge_id)
        if not commission:
            return Blocked(BlockReason.COMMISSION_NOT_FOUND)

        result = await self.ledger.reverse(
            commission.id, event.reason or DEFAULT_REFUND_REASON
        )
        if isinstance(result, Ok):
            await self.analytics.record_event(
                commission.affiliate_id,
                AnalyticsEventType.REFUND,
                {
                    "charge_id": event.charge_id,
                    "refund_amount_cents": event.refund_amount_cents,
                    "commission_reversed_cents": commission.commission_amount_cents,
                },
            )
        return result
