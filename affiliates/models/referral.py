"""
Referral model.

One tracked visit through an affiliate link, later bound to the user who
signed up and the customer who paid. Never deleted.
"""

from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from affiliates.models.base import Base
from affiliates.models.enums import ReferralStatus
from affiliates.models.types import UTCDateTime


class Referral(Base):
    """
    Referral entity.

    At most one referral binds a given customer_id, and at most one binds a
    given user_id. Both are enforced by unique constraints.

    Attributes:
        id: Primary key
        affiliate_id: Referring affiliate
        referral_id: Opaque id handed to the visitor
        landing_page: Path the visitor landed on
        utm_*, sub_id: Marketing attribution parameters
        ip_hash: Hashed network address for click velocity checks
        status: clicked, signed_up, converted or expired
        user_id: Host user bound at signup
        customer_id: Payment provider customer bound at checkout
        clicked_at: Click time
        signed_up_at, converted_at: Transition times
        expires_at: clicked_at + campaign cookie window
    """

    __tablename__ = "referrals"
    __table_args__ = (
        Index("ix_referrals_affiliate_status", "affiliate_id", "status"),
        Index("ix_referrals_status_expires", "status", "expires_at"),
        Index("ix_referrals_ip_hash_clicked", "ip_hash", "clicked_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    affiliate_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("affiliates.id"), nullable=False, index=True
    )
    referral_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    landing_page: Mapped[str] = mapped_column(String(2000), nullable=False)
    utm_source: Mapped[str | None] = mapped_column(String(255), nullable=True)
    utm_medium: Mapped[str | None] = mapped_column(String(255), nullable=True)
    utm_campaign: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sub_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    device_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    country: Mapped[str | None] = mapped_column(String(2), nullable=True)
    ip_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), default=ReferralStatus.CLICKED.value, nullable=False
    )

    user_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True
    )
    customer_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True
    )

    clicked_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    signed_up_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    converted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    def is_expired_at(self, now: datetime) -> bool:
        """Attribution window has lapsed at the given time."""
        return now > self.expires_at

    def __repr__(self) -> str:
        return (
            f"<Referral(id={self.id}, affiliate_id={self.affiliate_id}, "
            f"status={self.status})>"
        )
