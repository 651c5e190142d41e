"""Connection-pooling agents selected by protocol."""

from collections.abc import Mapping

import httpx
import structlog


logger = structlog.get_logger()


class AgentPool:
    """Maps a URL protocol to the httpx transport that serves it.

    An agent owns a connection pool; it is shared by every request issued
    through the client. Protocols without an explicit agent share one lazily
    created ``httpx.AsyncHTTPTransport``.
    """

    def __init__(
        self,
        agents: Mapping[str, httpx.AsyncBaseTransport] | None = None,
    ) -> None:
        """Initialize the pool.

        Args:
            agents: Transport per protocol (``http``, ``https``).
        """
        self._agents = {
            protocol.rstrip(":"): agent for protocol, agent in (agents or {}).items()
        }
        self._default: httpx.AsyncBaseTransport | None = None

    def select(self, protocol: str) -> httpx.AsyncBaseTransport:
        """Get the agent for a protocol.

        Args:
            protocol: URL scheme.

        Returns:
            Transport serving that protocol.
        """
        agent = self._agents.get(protocol)
        if agent is not None:
            return agent
        if self._default is None:
            self._default = httpx.AsyncHTTPTransport(retries=0)
            logger.debug("default_agent_created", component="transport")
        return self._default

    async def aclose(self) -> None:
        """Close every agent and its pooled connections."""
        agents = {id(agent): agent for agent in self._agents.values()}
        if self._default is not None:
            agents[id(self._default)] = self._default
        for agent in agents.values():
            await agent.aclose()
        self._default = None
