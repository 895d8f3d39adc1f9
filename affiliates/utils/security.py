"""
Security utilities for masking sensitive data in logs.

Provides functions to safely mask sensitive information like:
- Payment provider customer ids
- Network addresses
- Webhook signatures
"""

import hashlib


def mask_sensitive(value: str | None, show_chars: int = 4) -> str:
    """
    Mask sensitive string (keys, signatures, etc).

    Args:
        value: Sensitive value to mask
        show_chars: Number of characters to show at start and end

    Returns:
        Masked value or '***' if too short

    Examples:
        >>> mask_sensitive("my_secret_key_1234567890", show_chars=4)
        'my_s...7890'
        >>> mask_sensitive("short")
        '***'
    """
    if not value or len(value) <= show_chars * 2:
        return "***"
    return f"{value[:show_chars]}...{value[-show_chars:]}"


def mask_customer_id(customer_id: str | None) -> str:
    """
    Mask payment provider customer id: cus_AB...WXYZ

    Examples:
        >>> mask_customer_id("cus_ABCDEFGHIJKLMN")
        'cus_AB...KLMN'
        >>> mask_customer_id(None)
        '***'
    """
    if not customer_id or len(customer_id) < 10:
        return "***"
    return f"{customer_id[:6]}...{customer_id[-4:]}"


def mask_ip(ip_address: str | None) -> str:
    """
    Mask network address, keeping the leading part only.

    Examples:
        >>> mask_ip("203.0.113.45")
        '203.0.x.x'
        >>> mask_ip("2001:db8::1")
        '2001:db8:...'
    """
    if not ip_address:
        return "***"
    if ":" in ip_address:
        parts = ip_address.split(":")
        return ":".join(parts[:2]) + ":..."
    parts = ip_address.split(".")
    if len(parts) != 4:
        return "***"
    return f"{parts[0]}.{parts[1]}.x.x"


def mask_signature(signature: str | None) -> str:
    """Mask webhook signature header value."""
    return mask_sensitive(signature, show_chars=6)


def hash_ip(ip_address: str, salt: str = "") -> str:
    """
    One-way hash of a network address for velocity counting.

    Args:
        ip_address: Client address
        salt: Deployment-wide salt

    Returns:
        Hex SHA-256 digest
    """
    return hashlib.sha256(f"{salt}:{ip_address}".encode()).hexdigest()
