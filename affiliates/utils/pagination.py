"""
Cursor pagination helpers.

Cursors are opaque url-safe strings wrapping the last seen row id.
"""

import base64
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from affiliates.config.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from affiliates.utils.exceptions import AffiliateError

T = TypeVar("T")


class InvalidCursorError(AffiliateError):
    """Raised when a cursor cannot be decoded."""


@dataclass
class Page(Generic[T]):
    """One page of results and the cursor for the next one."""

    items: list[T] = field(default_factory=list)
    next_cursor: str | None = None

    @property
    def is_done(self) -> bool:
        return self.next_cursor is None


def encode_cursor(last_id: int) -> str:
    """Encode row id as cursor."""
    return base64.urlsafe_b64encode(f"id:{last_id}".encode()).decode()


def decode_cursor(cursor: str | None) -> int | None:
    """
    Decode cursor into row id.

    Raises:
        InvalidCursorError: If cursor is malformed
    """
    if not cursor:
        return None
    try:
        raw = base64.urlsafe_b64decode(cursor.encode()).decode()
        prefix, value = raw.split(":", 1)
        if prefix != "id":
            raise ValueError(prefix)
        return int(value)
    except (ValueError, UnicodeDecodeError) as e:
        raise InvalidCursorError(f"Invalid cursor: {cursor!r}") from e


def clamp_limit(limit: int | None) -> int:
    """Bound page size to [1, MAX_PAGE_SIZE]."""
    if not limit:
        return DEFAULT_PAGE_SIZE
    return max(1, min(limit, MAX_PAGE_SIZE))
