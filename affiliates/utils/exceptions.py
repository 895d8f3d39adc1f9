"""
Exception handling utilities.

Defines categorized exception types for proper error handling.
"""

from sqlalchemy.exc import InterfaceError, OperationalError


class AffiliateError(Exception):
    """Base class for engine errors."""

    retryable = False


class ConfigurationError(AffiliateError):
    """Raised at construction when required configuration is missing."""


class NotFoundError(AffiliateError):
    """Raised when a referenced entity does not exist."""


class InvalidStateError(AffiliateError):
    """Raised when an entity is not in a state allowing the transition."""


class DuplicateError(AffiliateError):
    """Raised when a uniqueness constraint rejects a write."""


class AuthenticationError(AffiliateError):
    """Raised when the host cannot resolve a user for the request."""


class AuthorizationError(AffiliateError):
    """Raised when the caller lacks the admin role."""


class WebhookSignatureError(AffiliateError):
    """Raised when a webhook signature is missing, stale or wrong."""


class WebhookPayloadError(AffiliateError):
    """Raised when a signed webhook body cannot be processed."""

    retryable = True


# Exception categories based on handling strategy

# Transient - surface to the caller so the sender retries
RETRYABLE = (
    OperationalError,  # Connection dropped, lock timeout
    InterfaceError,  # Driver lost the connection
    WebhookPayloadError,
)

# Caller mistakes - never retried
CLIENT_ERRORS = (
    NotFoundError,
    InvalidStateError,
    DuplicateError,
    AuthenticationError,
    AuthorizationError,
    WebhookSignatureError,
)


def is_retryable(exc: Exception) -> bool:
    """
    Check if exception is transient and the operation may be retried.

    Args:
        exc: Exception to check

    Returns:
        True if exception is retryable
    """
    if isinstance(exc, AffiliateError):
        return exc.retryable
    return isinstance(exc, RETRYABLE)


def is_client_error(exc: Exception) -> bool:
    """
    Check if exception was caused by the caller.

    Args:
        exc: Exception to check

    Returns:
        True if exception is a client error
    """
    return isinstance(exc, CLIENT_ERRORS)
