"""Protocols for the collaborators consulted by the transport invoker.

Both protocols may be implemented with plain or coroutine methods; the
invoker awaits whatever is returned when it is awaitable.
"""

from collections.abc import Awaitable
from typing import Protocol, runtime_checkable


@runtime_checkable
class Resolver(Protocol):
    """Hostname lookup consulted before connecting.

    Abstracts DNS caching so that tests and alternative resolvers can be
    injected.
    """

    def lookup(self, hostname: str) -> Awaitable[str] | str:
        """Resolve a hostname to an address.

        Args:
            hostname: Host name from the request URL.

        Returns:
            IPv4 or IPv6 address literal.
        """
        ...


@runtime_checkable
class CookieJar(Protocol):
    """Cookie storage read before sending and written after receiving."""

    def get_cookie_header(self, url: str) -> Awaitable[str | None] | str | None:
        """Build the Cookie header value for a URL.

        Args:
            url: Request URL.

        Returns:
            Cookie header value, or None when no cookie applies.
        """
        ...

    def set_cookies(
        self, url: str, set_cookie_headers: list[str]
    ) -> Awaitable[None] | None:
        """Store cookies received from a response.

        Args:
            url: URL the response came from.
            set_cookie_headers: Raw ``Set-Cookie`` header values.
        """
        ...
