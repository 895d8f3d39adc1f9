"""
Webhook signature verification.

Header format: ``t=<unix seconds>,v1=<hex HMAC-SHA256>``. The signed
message is ``"<t>." + raw body``.
"""

import hashlib
import hmac
from datetime import datetime

from affiliates.config.constants import WEBHOOK_SIGNATURE_SCHEME, WEBHOOK_TOLERANCE_SECONDS
from affiliates.utils.exceptions import WebhookSignatureError


class MissingSignatureError(WebhookSignatureError):
    """Raised when the request carries no signature header."""


def compute_signature(secret: str, timestamp: int, raw_body: bytes) -> str:
    """Compute hex HMAC-SHA256 of a webhook body."""
    message = f"{timestamp}.".encode() + raw_body
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def build_signature_header(secret: str, timestamp: int, raw_body: bytes) -> str:
    """Build the header value a sender attaches to a body."""
    signature = compute_signature(secret, timestamp, raw_body)
    return f"t={timestamp},{WEBHOOK_SIGNATURE_SCHEME}={signature}"


def parse_signature_header(header: str) -> tuple[int, list[str]]:
    """
    Split header into timestamp and candidate signatures.

    Raises:
        WebhookSignatureError: If the header is malformed
    """
    timestamp = None
    signatures = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError as e:
                raise WebhookSignatureError("Invalid signature timestamp") from e
        elif key == WEBHOOK_SIGNATURE_SCHEME:
            signatures.append(value)

    if timestamp is None or not signatures:
        raise WebhookSignatureError("Malformed signature header")
    return timestamp, signatures


def verify_signature(
    raw_body: bytes,
    header: str | None,
    secret: str,
    now: datetime,
    tolerance_seconds: int = WEBHOOK_TOLERANCE_SECONDS,
) -> int:
    """
    Verify a webhook signature header against the raw body.

    Args:
        raw_body: Request body bytes, exactly as received
        header: Signature header value
        secret: Shared webhook secret
        now: Current time
        tolerance_seconds: Maximum age (and clock skew) of the timestamp

    Returns:
        Signed timestamp

    Raises:
        MissingSignatureError: If header is absent
        WebhookSignatureError: If header is malformed, stale or wrong
    """
    if not header:
        raise MissingSignatureError("Missing signature header")

    timestamp, signatures = parse_signature_header(header)
    if abs(now.timestamp() - timestamp) > tolerance_seconds:
        raise WebhookSignatureError("Signature timestamp outside tolerance")

    expected = compute_signature(secret, timestamp, raw_body)
    # Constant-time comparison
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise WebhookSignatureError("Signature mismatch")
    return timestamp
