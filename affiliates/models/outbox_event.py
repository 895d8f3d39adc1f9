"""
OutboxEvent model.

Lifecycle notifications written in the same transaction as the state change
they describe, delivered to hooks after commit.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from affiliates.models.base import Base
from affiliates.models.types import UTCDateTime
from affiliates.utils.datetime_utils import utc_now


class OutboxEvent(Base):
    """
    Outbox event.

    Attributes:
        id: Primary key
        event_type: Lifecycle event name (e.g. "commission.created")
        payload: Hook payload
        attempts: Delivery attempts so far
        last_error: Last hook failure message
        created_at: When the event was written
        dispatched_at: When delivery finished (None = pending)
    """

    __tablename__ = "outbox_events"
    __table_args__ = (
        Index("ix_outbox_events_pending", "dispatched_at", "id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )
    dispatched_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<OutboxEvent(id={self.id}, type={self.event_type}, "
            f"attempts={self.attempts})>"
        )
