"""Transport invocation: agents, lifecycle signals, DNS and cookie adapters."""

from courier.transport.agents import AgentPool
from courier.transport.cookies import HttpxCookieJar
from courier.transport.dns import CachingResolver
from courier.transport.events import DownloadProgress, LifecycleEmitter, LifecycleEvent
from courier.transport.invoker import Exchange, TransportInvoker
from courier.transport.protocols import CookieJar, Resolver


__all__ = [
    "AgentPool",
    "CachingResolver",
    "CookieJar",
    "DownloadProgress",
    "Exchange",
    "HttpxCookieJar",
    "LifecycleEmitter",
    "LifecycleEvent",
    "Resolver",
    "TransportInvoker",
]
