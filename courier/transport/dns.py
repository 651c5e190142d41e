"""Cached hostname lookup."""

import asyncio
import socket
import time

import structlog


logger = structlog.get_logger()


class CachingResolver:
    """Resolver that memoizes ``getaddrinfo`` results for a fixed TTL.

    Shared across concurrent requests; entries are only ever replaced whole,
    so no locking is needed.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        family: int = socket.AF_UNSPEC,
    ) -> None:
        """Initialize the resolver.

        Args:
            ttl_seconds: How long a resolved address is reused.
            family: Address family passed to ``getaddrinfo``.
        """
        self._ttl = ttl_seconds
        self._family = family
        self._entries: dict[str, tuple[str, float]] = {}

    async def lookup(self, hostname: str) -> str:
        """Resolve a hostname, serving cached addresses while fresh.

        Args:
            hostname: Host name to resolve.

        Returns:
            First address returned by the system resolver.

        Raises:
            socket.gaierror: If the name cannot be resolved.
        """
        now = time.monotonic()
        cached = self._entries.get(hostname)
        if cached is not None and cached[1] > now:
            return cached[0]

        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(
            hostname, None, family=self._family, type=socket.SOCK_STREAM
        )
        address = str(infos[0][4][0])
        self._entries[hostname] = (address, now + self._ttl)
        logger.debug(
            "dns_resolved", component="dns", hostname=hostname, address=address
        )
        return address

    def clear(self) -> None:
        """Forget every cached address."""
        self._entries.clear()
