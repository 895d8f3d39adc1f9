"""Payment webhook handling."""

from affiliates.services.webhook.processor import WebhookProcessor
from affiliates.services.webhook.signature import (
    MissingSignatureError,
    build_signature_header,
    verify_signature,
)

__all__ = [
    "WebhookProcessor",
    "MissingSignatureError",
    "build_signature_header",
    "verify_signature",
]
