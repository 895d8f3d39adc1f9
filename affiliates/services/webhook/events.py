"""Pydantic models for payment webhook events."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from affiliates.config.constants import DEFAULT_CURRENCY
from affiliates.utils.exceptions import WebhookPayloadError

CHECKOUT_COMPLETED = "checkout.completed"
PAYMENT_SUCCEEDED = "payment.succeeded"
PAYMENT_REFUNDED = "payment.refunded"


class WebhookEnvelope(BaseModel):
    """Outer event body: id, type and the type-specific data object."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, description="Provider event id")
    type: str = Field(..., min_length=1, description="Event type")
    data: dict[str, Any] = Field(default_factory=dict, description="Event object")


class CheckoutCompleted(BaseModel):
    """Checkout finished; links the paying customer to the user."""

    model_config = ConfigDict(extra="ignore")

    customer_id: str = Field(..., min_length=1, description="Payment customer id")
    user_id: str | None = Field(default=None, description="Host user who paid")
    affiliate_code: str | None = Field(
        default=None, description="Code carried through checkout"
    )


class PaymentSucceeded(BaseModel):
    """A payment (one-off or subscription invoice) was collected."""

    model_config = ConfigDict(extra="ignore")

    payment_id: str = Field(..., min_length=1, description="Invoice/payment id")
    customer_id: str = Field(..., min_length=1, description="Payment customer id")
    amount_cents: int = Field(..., description="Amount paid in cents")
    currency: str = Field(default=DEFAULT_CURRENCY, min_length=3, max_length=3)
    charge_id: str | None = Field(default=None, description="Charge id for refunds")
    subscription_id: str | None = Field(default=None)
    product_id: str | None = Field(default=None)


class PaymentRefunded(BaseModel):
    """A charge was refunded."""

    model_config = ConfigDict(extra="ignore")

    charge_id: str = Field(..., min_length=1, description="Refunded charge id")
    refund_amount_cents: int | None = Field(default=None, ge=0)
    reason: str | None = Field(default=None)


EVENT_MODELS: dict[str, type[BaseModel]] = {
    CHECKOUT_COMPLETED: CheckoutCompleted,
    PAYMENT_SUCCEEDED: PaymentSucceeded,
    PAYMENT_REFUNDED: PaymentRefunded,
}


def parse_event(raw_body: bytes) -> tuple[WebhookEnvelope, BaseModel | None]:
    """
    Parse a verified webhook body.

    Args:
        raw_body: Request body, already signature-checked

    Returns:
        Envelope and typed data, or None data for event types not handled

    Raises:
        WebhookPayloadError: If body or data don't match the event schema
    """
    try:
        envelope = WebhookEnvelope.model_validate_json(raw_body)
        model = EVENT_MODELS.get(envelope.type)
        if model is None:
            return envelope, None
        return envelope, model.model_validate(envelope.data)
    except ValidationError as e:
        raise WebhookPayloadError(f"Malformed webhook payload: {e}") from e
