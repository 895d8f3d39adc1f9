"""
Per-request caller context.

The host's authentication callbacks are evaluated once per request and the
resulting context is passed explicitly into every operation.
"""

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from affiliates.utils.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
)

AuthCallback = Callable[[Any], Awaitable[str | None] | str | None]
AdminCallback = Callable[[Any], Awaitable[bool] | bool]


@dataclass(frozen=True)
class RequestContext:
    """Identity and role of the caller of one request."""

    user_id: str | None = None
    is_admin: bool = False

    @classmethod
    def anonymous(cls) -> "RequestContext":
        return cls()

    def require_user(self) -> str:
        """
        Get the authenticated user id.

        Raises:
            AuthenticationError: If the request is anonymous
        """
        if not self.user_id:
            raise AuthenticationError("Authentication required")
        return self.user_id

    def require_admin(self) -> str:
        """
        Get the admin user id.

        Raises:
            AuthenticationError: If the request is anonymous
            AuthorizationError: If the user is not an admin
        """
        user_id = self.require_user()
        if not self.is_admin:
            raise AuthorizationError("Admin access required")
        return user_id


class HostAuth:
    """
    Wraps the host's auth callbacks.

    Both callbacks are required: admin operations fail closed rather than
    defaulting to "any authenticated user".
    """

    def __init__(
        self, auth: AuthCallback | None, is_admin: AdminCallback | None
    ) -> None:
        """
        Initialize host auth.

        Args:
            auth: Returns the user id for a raw host context, or None
            is_admin: Returns True when the raw host context is an admin

        Raises:
            ConfigurationError: If a callback is missing
        """
        if auth is None:
            raise ConfigurationError("An auth callback is required")
        if is_admin is None:
            raise ConfigurationError(
                "An is_admin callback is required; admin operations never "
                "default to any authenticated user"
            )
        self._auth = auth
        self._is_admin = is_admin

    async def build_context(self, raw_ctx: Any) -> RequestContext:
        """
        Evaluate the callbacks once for a request.

        Args:
            raw_ctx: Host request object passed to the callbacks

        Returns:
            Request context
        """
        user_id = await _maybe_await(self._auth(raw_ctx))
        if not user_id:
            return RequestContext.anonymous()
        is_admin = bool(await _maybe_await(self._is_admin(raw_ctx)))
        return RequestContext(user_id=str(user_id), is_admin=is_admin)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value
