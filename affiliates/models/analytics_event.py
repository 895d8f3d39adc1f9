"""
AnalyticsEvent model.

Append-only log of affiliate activity.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from affiliates.models.base import Base
from affiliates.models.types import UTCDateTime
from affiliates.utils.datetime_utils import utc_now


class AnalyticsEvent(Base):
    """
    Analytics event.

    Attributes:
        id: Primary key
        affiliate_id: Affiliate the event belongs to
        event_type: click, signup, conversion, refund or payout
        event_metadata: Free-form JSON details (column "metadata")
        occurred_at: Event time
    """

    __tablename__ = "analytics_events"
    __table_args__ = (
        Index("ix_analytics_events_affiliate_type", "affiliate_id", "event_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    affiliate_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("affiliates.id"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(20), nullable=False)
    event_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True
    )
    occurred_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return (
            f"<AnalyticsEvent(affiliate_id={self.affiliate_id}, "
            f"type={self.event_type})>"
        )
