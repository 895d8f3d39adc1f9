"""
Lifecycle hooks exposed to the host application.

Hooks receive typed payloads after the state change they describe has been
committed. A failing hook is logged and never affects engine state.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, fields
from typing import Any

from affiliates.models.enums import LifecycleEventType

HookCallable = Callable[[Any], Awaitable[None] | None]


@dataclass(frozen=True)
class AffiliateEventData:
    """Payload of affiliate registered/approved/rejected/suspended."""

    affiliate_id: int
    user_id: str
    code: str
    email: str
    status: str


@dataclass(frozen=True)
class CommissionCreatedData:
    commission_id: int
    affiliate_id: int
    affiliate_code: str
    amount_cents: int
    currency: str


@dataclass(frozen=True)
class CommissionReversedData:
    commission_id: int
    affiliate_id: int
    amount_cents: int
    reason: str | None = None


@dataclass(frozen=True)
class CustomerLinkedData:
    customer_id: str
    affiliate_id: int
    user_id: str | None = None


PAYLOAD_TYPES: dict[str, type] = {
    LifecycleEventType.AFFILIATE_REGISTERED: AffiliateEventData,
    LifecycleEventType.AFFILIATE_APPROVED: AffiliateEventData,
    LifecycleEventType.AFFILIATE_REJECTED: AffiliateEventData,
    LifecycleEventType.AFFILIATE_SUSPENDED: AffiliateEventData,
    LifecycleEventType.COMMISSION_CREATED: CommissionCreatedData,
    LifecycleEventType.COMMISSION_REVERSED: CommissionReversedData,
    LifecycleEventType.CUSTOMER_LINKED: CustomerLinkedData,
}


def build_payload(event_type: str, data: dict[str, Any]) -> Any:
    """
    Rebuild a typed payload from its stored JSON form.

    Unknown keys are dropped so older rows stay readable.

    Raises:
        KeyError: If event type is unknown
    """
    payload_type = PAYLOAD_TYPES[event_type]
    names = {f.name for f in fields(payload_type)}
    return payload_type(**{k: v for k, v in data.items() if k in names})


@dataclass
class LifecycleHooks:
    """
    Host callbacks, each optional, sync or async.

    Attributes:
        on_affiliate_registered: New affiliate registered
        on_affiliate_approved: Admin approved an affiliate
        on_affiliate_rejected: Admin rejected an affiliate
        on_affiliate_suspended: Admin suspended an affiliate
        on_commission_created: Commission created from a payment
        on_commission_reversed: Commission reversed after a refund
        on_customer_linked: Payment customer bound to a referral
    """

    on_affiliate_registered: HookCallable | None = None
    on_affiliate_approved: HookCallable | None = None
    on_affiliate_rejected: HookCallable | None = None
    on_affiliate_suspended: HookCallable | None = None
    on_commission_created: HookCallable | None = None
    on_commission_reversed: HookCallable | None = None
    on_customer_linked: HookCallable | None = None

    def handler_for(self, event_type: str) -> HookCallable | None:
        """Get the callback registered for an event type."""
        attr = "on_" + event_type.replace(".", "_")
        return getattr(self, attr, None)
