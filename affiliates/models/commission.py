"""
Commission model.

Amount owed to an affiliate for one payment by a referred customer.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from affiliates.config.constants import DEFAULT_CURRENCY
from affiliates.models.base import Base
from affiliates.models.enums import CommissionStatus
from affiliates.models.types import CentsType, RatePercentType, UTCDateTime
from affiliates.utils.datetime_utils import utc_now


class Commission(Base):
    """
    Commission entity.

    Status flow: pending -> approved -> processing -> paid, with reversed
    reachable from every non-reversed state. paid and reversed are
    terminal.

    Attributes:
        id: Primary key
        affiliate_id: Affiliate earning the commission
        referral_id: Referral the payment was attributed through
        customer_id: Paying customer
        external_event_id: Payment event id (invoice), unique
        charge_id: Charge id used to match refunds
        subscription_id, product_id: Payment details
        payment_number: Ordinal of this payment for the customer
        sale_amount_cents: Payment amount
        commission_amount_cents: Amount owed
        commission_rate: Rate applied (for audit)
        commission_type: percentage or fixed
        currency: ISO currency code, lower-case
        status: pending, approved, processing, paid or reversed
        payout_id: Payout this commission was batched into
        due_at: created_at + payout term
        reversal_reason: Why the commission was reversed
    """

    __tablename__ = "commissions"
    __table_args__ = (
        Index("ix_commissions_affiliate_status", "affiliate_id", "status"),
        Index("ix_commissions_status_due", "status", "due_at"),
        CheckConstraint("sale_amount_cents >= 0", name="sale_amount_non_negative"),
        CheckConstraint(
            "commission_amount_cents >= 0", name="commission_amount_non_negative"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    affiliate_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("affiliates.id"), nullable=False, index=True
    )
    referral_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("referrals.id"), nullable=False, index=True
    )

    customer_id: Mapped[str] = mapped_column(String(255), nullable=False)
    external_event_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True
    )
    charge_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    product_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    sale_amount_cents: Mapped[int] = mapped_column(CentsType, nullable=False)
    commission_amount_cents: Mapped[int] = mapped_column(CentsType, nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(RatePercentType, nullable=False)
    commission_type: Mapped[str] = mapped_column(String(20), nullable=False)
    currency: Mapped[str] = mapped_column(
        String(3), default=DEFAULT_CURRENCY, nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20), default=CommissionStatus.PENDING.value, nullable=False
    )
    payout_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("payouts.id"), nullable=True, index=True
    )
    due_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    reversed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    reversal_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Commission(id={self.id}, affiliate_id={self.affiliate_id}, "
            f"amount={self.commission_amount_cents}, status={self.status})>"
        )
