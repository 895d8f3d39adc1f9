"""
Payout model.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from affiliates.config.constants import DEFAULT_CURRENCY
from affiliates.models.base import Base
from affiliates.models.enums import PayoutMethod, PayoutStatus
from affiliates.models.types import CentsType, UTCDateTime
from affiliates.utils.datetime_utils import utc_now


class Payout(Base):
    """
    Payout entity.

    A batch of approved, due commissions owed to one affiliate.

    Attributes:
        id: Primary key
        affiliate_id: Affiliate being paid
        amount_cents: Sum of batched commissions
        currency: ISO currency code
        method: Delivery method
        commissions_count: Number of batched commissions
        period_start, period_end: Creation window of batched commissions
        status: pending, completed or cancelled
        notes: Free-form admin notes
        completed_at: When the payout was completed
    """

    __tablename__ = "payouts"
    __table_args__ = (
        Index("ix_payouts_affiliate_status", "affiliate_id", "status"),
        CheckConstraint("amount_cents >= 0", name="amount_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    affiliate_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("affiliates.id"), nullable=False, index=True
    )
    amount_cents: Mapped[int] = mapped_column(CentsType, nullable=False)
    currency: Mapped[str] = mapped_column(
        String(3), default=DEFAULT_CURRENCY, nullable=False
    )
    method: Mapped[str] = mapped_column(
        String(20), default=PayoutMethod.MANUAL.value, nullable=False
    )
    commissions_count: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    period_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=PayoutStatus.PENDING.value, nullable=False, index=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Payout(id={self.id}, affiliate_id={self.affiliate_id}, "
            f"amount={self.amount_cents}, status={self.status})>"
        )
