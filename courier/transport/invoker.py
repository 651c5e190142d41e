"""Transport invoker: opens exactly one underlying request per call."""

import asyncio
import errno
import ipaddress
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from courier.awaitables import maybe_await
from courier.errors import RequestTimeoutError, TransportError
from courier.options.models import RequestDescriptor, Timeouts
from courier.redact import redact_headers, redact_url_credentials
from courier.response.models import Response, Timings
from courier.transport.agents import AgentPool
from courier.transport.events import LifecycleEmitter, LifecycleEvent


logger = structlog.get_logger()

_TIMEOUT_PHASES: tuple[tuple[type[httpx.TimeoutException], str], ...] = (
    (httpx.ConnectTimeout, "connect"),
    (httpx.ReadTimeout, "socket"),
    (httpx.WriteTimeout, "send"),
    (httpx.PoolTimeout, "pool"),
)

_FALLBACK_CODES: tuple[tuple[type[httpx.TransportError], str], ...] = (
    (httpx.ConnectError, "ECONNREFUSED"),
    (httpx.ReadError, "ECONNRESET"),
    (httpx.WriteError, "EPIPE"),
    (httpx.RemoteProtocolError, "ECONNRESET"),
)

# httpcore trace event -> timing attribute
_TRACE_MARKS: dict[str, str] = {
    "connection.connect_tcp.complete": "connect",
    "connection.start_tls.complete": "secure_connect",
    "http11.send_request_body.complete": "upload",
    "http2.send_request_body.complete": "upload",
    "http11.receive_response_headers.complete": "response",
    "http2.receive_response_headers.complete": "response",
}

# First trace events seen on a fresh or a reused connection
_SOCKET_TRACE_EVENTS = frozenset(
    {
        "connection.connect_tcp.complete",
        "http11.send_request_headers.started",
        "http2.send_request_headers.started",
    }
)


@dataclass
class Exchange:
    """Response headers received, body not yet read.

    Attributes:
        response: Response model handed to the rest of the engine.
        stream: Underlying httpx response holding the unread body.
    """

    response: Response
    stream: httpx.Response

    async def aclose(self) -> None:
        """Release the connection without reading the body."""
        await self.stream.aclose()


def connect_timeout(timeouts: Timeouts, resolver_configured: bool) -> float | None:
    """Fold the connection-establishment phases into one httpx connect limit.

    Args:
        timeouts: Per-phase timeouts.
        resolver_configured: Whether lookup runs through a separate resolver.

    Returns:
        Smallest configured limit, or None.
    """
    limits = [t for t in (timeouts.connect, timeouts.secure_connect) if t is not None]
    if not resolver_configured and timeouts.lookup is not None:
        limits.append(timeouts.lookup)
    return min(limits) if limits else None


def httpx_timeout(timeouts: Timeouts, resolver_configured: bool) -> httpx.Timeout:
    """Map per-phase timeouts onto httpx's connect/read/write/pool limits.

    Args:
        timeouts: Per-phase timeouts.
        resolver_configured: Whether lookup runs through a separate resolver.

    Returns:
        httpx Timeout configuration.
    """
    connect = connect_timeout(timeouts, resolver_configured)
    return httpx.Timeout(
        None,
        connect=connect,
        read=timeouts.socket,
        write=timeouts.send,
        pool=connect,
    )


def error_code(exc: BaseException) -> str | None:
    """Find the errno-style code behind a transport failure.

    Walks the exception chain looking for the originating OS error.

    Args:
        exc: Exception raised by the transport.

    Returns:
        Code such as ``ECONNREFUSED`` or ``ENOTFOUND``, or None.
    """
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, socket.gaierror):
            return "EAI_AGAIN" if current.errno == socket.EAI_AGAIN else "ENOTFOUND"
        if isinstance(current, OSError) and current.errno:
            return errno.errorcode.get(current.errno)
        current = current.__cause__ or current.__context__
    return None


def classify_transport_error(
    exc: httpx.TransportError,
    descriptor: RequestDescriptor,
) -> TransportError:
    """Translate an httpx transport exception into the typed taxonomy.

    Args:
        exc: Exception raised by the transport.
        descriptor: Request descriptor in flight.

    Returns:
        TransportError (or RequestTimeoutError) with an errno-style code.
    """
    if isinstance(exc, httpx.TimeoutException):
        phase = next(
            (name for kind, name in _TIMEOUT_PHASES if isinstance(exc, kind)),
            "socket",
        )
        return RequestTimeoutError(
            phase, phase_limit(descriptor, phase), descriptor=descriptor
        )

    code = error_code(exc) or next(
        (name for kind, name in _FALLBACK_CODES if isinstance(exc, kind)),
        "ERR_TRANSPORT",
    )
    message = str(exc) or type(exc).__name__
    return TransportError(message, descriptor=descriptor, code=code)


def phase_limit(descriptor: RequestDescriptor, phase: str) -> float | None:
    """Get the configured limit for a timeout phase.

    Args:
        descriptor: Request descriptor.
        phase: Phase name.

    Returns:
        Limit in seconds, or None.
    """
    timeouts = descriptor.timeout
    if phase in ("connect", "pool"):
        return connect_timeout(timeouts, descriptor.dns_cache is not None)
    return getattr(timeouts, phase, None)


def _is_ip_address(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def remote_address(stream: httpx.Response) -> str | None:
    """Get the peer IP address of the connection that served a response.

    Only agents backed by a real socket expose it, through the
    ``network_stream`` response extension.
    """
    network_stream = stream.extensions.get("network_stream")
    if network_stream is None:
        return None
    address = network_stream.get_extra_info("server_addr")
    if not address:
        return None
    return str(address[0])


class TransportInvoker:
    """Opens one request through the agent selected by protocol.

    Consults the DNS resolver and cookie jar, applies phase timeouts, and
    emits ``request``, ``socket``, and ``response`` signals in order. Each
    call either returns one Exchange or raises one TransportError.
    """

    def __init__(self, agents: AgentPool) -> None:
        """Initialize the invoker.

        Args:
            agents: Agent pool shared by the client.
        """
        self._agents = agents

    async def open(
        self,
        descriptor: RequestDescriptor,
        emitter: LifecycleEmitter,
        timings: Timings,
    ) -> Exchange:
        """Send the request and wait for response headers.

        Args:
            descriptor: Request descriptor for this attempt.
            emitter: Lifecycle signal emitter.
            timings: Timing record for this attempt.

        Returns:
            Exchange holding the response model and the unread body stream.

        Raises:
            TransportError: On DNS, connection, protocol, or timeout failure.
        """
        log = logger.bind(
            component="transport",
            method=descriptor.method,
            url=redact_url_credentials(descriptor.url),
        )
        url = descriptor.parsed_url
        headers = descriptor.headers_dict()
        extensions: dict[str, Any] = {
            "timeout": httpx_timeout(
                descriptor.timeout, descriptor.dns_cache is not None
            ).as_dict(),
            "trace": self._tracer(emitter, timings),
        }

        if descriptor.cookie_jar is not None:
            cookie = await maybe_await(
                descriptor.cookie_jar.get_cookie_header(descriptor.url)
            )
            if cookie:
                headers["cookie"] = cookie

        if descriptor.dns_cache is not None and not _is_ip_address(url.host):
            address = await self._lookup(descriptor, timings)
            headers.setdefault("host", descriptor.host)
            if url.scheme == "https":
                extensions["sni_hostname"] = url.host
            url = url.copy_with(host=address)

        request = httpx.Request(
            descriptor.method,
            url,
            headers=headers,
            content=descriptor.body,
            extensions=extensions,
        )
        emitter.emit(LifecycleEvent.REQUEST, descriptor)
        log.debug("transport_open", headers=redact_headers(headers))

        agent = self._agents.select(descriptor.protocol)
        try:
            async with asyncio.timeout(descriptor.timeout.response):
                stream = await agent.handle_async_request(request)
        except TimeoutError as exc:
            timings.mark("error")
            raise RequestTimeoutError(
                "response", descriptor.timeout.response, descriptor=descriptor
            ) from exc
        except httpx.TransportError as exc:
            timings.mark("error")
            raise classify_transport_error(exc, descriptor) from exc

        try:
            stream.request = request
            timings.mark("socket")
            timings.mark("response")
            emitter.emit(LifecycleEvent.SOCKET)
            await self._store_cookies(descriptor, stream, log)
            response = Response(
                status_code=stream.status_code,
                headers=stream.headers,
                url=descriptor.url,
                descriptor=descriptor,
                reason_phrase=stream.reason_phrase,
                http_version=stream.http_version,
                redirect_urls=list(descriptor.redirect_urls),
                retry_count=descriptor.retry_count,
                ip=remote_address(stream),
                timings=timings,
            )
            emitter.emit(LifecycleEvent.RESPONSE, response)
        except BaseException:
            await stream.aclose()
            raise

        log.debug("transport_headers", status_code=response.status_code)
        return Exchange(response=response, stream=stream)

    async def _lookup(self, descriptor: RequestDescriptor, timings: Timings) -> str:
        resolver = descriptor.dns_cache
        try:
            async with asyncio.timeout(descriptor.timeout.lookup):
                address = await maybe_await(resolver.lookup(descriptor.hostname))
        except TimeoutError as exc:
            timings.mark("error")
            raise RequestTimeoutError(
                "lookup", descriptor.timeout.lookup, descriptor=descriptor
            ) from exc
        except OSError as exc:
            timings.mark("error")
            raise TransportError(
                f"getaddrinfo failed for {descriptor.hostname}: {exc}",
                descriptor=descriptor,
                code=error_code(exc) or "ENOTFOUND",
            ) from exc
        timings.mark("lookup")
        return str(address)

    async def _store_cookies(
        self,
        descriptor: RequestDescriptor,
        stream: httpx.Response,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        jar = descriptor.cookie_jar
        set_cookie = stream.headers.get_list("set-cookie")
        if jar is None or not set_cookie:
            return
        try:
            await maybe_await(jar.set_cookies(descriptor.url, set_cookie))
        except Exception as exc:  # noqa: BLE001
            if not descriptor.ignore_invalid_cookies:
                raise TransportError(
                    f"Invalid cookie received: {exc}",
                    descriptor=descriptor,
                    code="ERR_INVALID_COOKIE",
                ) from exc
            log.warning("invalid_cookie_ignored", error=str(exc))

    @staticmethod
    def _tracer(
        emitter: LifecycleEmitter,
        timings: Timings,
    ) -> Callable[[str, dict[str, Any]], Awaitable[None]]:
        async def trace(event_name: str, info: dict[str, Any]) -> None:
            phase = _TRACE_MARKS.get(event_name)
            if phase is not None:
                timings.mark(phase)
            if event_name in _SOCKET_TRACE_EVENTS:
                timings.mark("socket")
                emitter.emit(LifecycleEvent.SOCKET)

        return trace
