"""Typed error taxonomy for the request engine.

Every error surfaced to a caller carries enough of the originating request
(method, URL, hostname, path) to reproduce the failing call, and, where one
was received, the response.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx


if TYPE_CHECKING:
    from courier.options.models import RequestDescriptor
    from courier.response.models import Response


class ErrorClass(str, Enum):
    """Classification of request errors for retry decisions and metrics.

    - CONFIGURATION: Invalid options; raised before any network I/O
    - TRANSPORT: Connection, DNS, or protocol failure
    - TIMEOUT: A per-phase timeout elapsed
    - READ: The response body failed mid-stream
    - REDIRECT_LIMIT: Too many redirects
    - HTTP_STATUS: Final response had a non-2xx status
    - PARSE: Response body could not be decoded
    - CANCELED: Caller canceled the request
    """

    CONFIGURATION = "CONFIGURATION"
    TRANSPORT = "TRANSPORT"
    TIMEOUT = "TIMEOUT"
    READ = "READ"
    REDIRECT_LIMIT = "REDIRECT_LIMIT"
    HTTP_STATUS = "HTTP_STATUS"
    PARSE = "PARSE"
    CANCELED = "CANCELED"


class CourierError(Exception):
    """Base exception for every error raised by the client.

    Attributes:
        error_class: Classification of the error.
        message: Human-readable error message.
        descriptor: The request descriptor in flight, when one exists.
        response: The response received, when one exists.
        code: Machine-readable error code (e.g. ``ECONNRESET``).
    """

    error_class: ErrorClass = ErrorClass.TRANSPORT

    def __init__(
        self,
        message: str,
        *,
        descriptor: "RequestDescriptor | None" = None,
        response: "Response | None" = None,
        code: str | None = None,
        method: str | None = None,
        url: str | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            descriptor: Request descriptor that produced the error.
            response: Response received before the error, if any.
            code: Machine-readable error code.
            method: Request method when no descriptor exists yet.
            url: Request URL when no descriptor exists yet.
        """
        super().__init__(message)
        self.message = message
        self.descriptor = descriptor
        self.response = response
        self.code = code
        self._method = method
        self._url = url

    @property
    def method(self) -> str | None:
        """Get the request method."""
        if self.descriptor is not None:
            return self.descriptor.method
        return self._method

    @property
    def url(self) -> str | None:
        """Get the request URL."""
        if self.descriptor is not None:
            return self.descriptor.url
        return self._url

    @property
    def hostname(self) -> str | None:
        """Get the request hostname."""
        if self.descriptor is not None:
            return self.descriptor.hostname
        if self._url is None:
            return None
        return httpx.URL(self._url).host or None

    @property
    def path(self) -> str | None:
        """Get the request path including the query string."""
        if self.descriptor is not None:
            return self.descriptor.path
        if self._url is None:
            return None
        return httpx.URL(self._url).raw_path.decode("ascii")

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "error_class": self.error_class.value,
            "message": self.message,
            "code": self.code,
            "method": self.method,
            "hostname": self.hostname,
            "path": self.path,
            "status_code": self.response.status_code if self.response else None,
        }


class ConfigurationError(CourierError):
    """Invalid options. Raised locally and never retried."""

    error_class = ErrorClass.CONFIGURATION


class TransportError(CourierError):
    """Connection, DNS, or protocol failure; retryable per policy."""

    error_class = ErrorClass.TRANSPORT


class RequestTimeoutError(TransportError):
    """A per-phase timeout elapsed.

    Attributes:
        phase: Name of the timed-out phase (``connect``, ``response``, ...).
        timeout: Configured limit in seconds.
    """

    error_class = ErrorClass.TIMEOUT

    def __init__(
        self,
        phase: str,
        timeout: float | None,
        *,
        descriptor: "RequestDescriptor | None" = None,
    ) -> None:
        """Initialize the timeout error.

        Args:
            phase: Name of the timed-out phase.
            timeout: Configured limit in seconds.
            descriptor: Request descriptor in flight.
        """
        limit = f" for {timeout}s" if timeout is not None else ""
        super().__init__(
            f"Timeout awaiting '{phase}'{limit}",
            descriptor=descriptor,
            code="ETIMEDOUT",
        )
        self.phase = phase
        self.timeout = timeout


class ReadError(TransportError):
    """The response body failed mid-stream (truncation, decoding, size)."""

    error_class = ErrorClass.READ


class MaxRedirectsError(CourierError):
    """The redirect chain exceeded the configured maximum."""

    error_class = ErrorClass.REDIRECT_LIMIT

    def __init__(self, response: "Response", max_redirects: int) -> None:
        """Initialize the redirect limit error.

        Args:
            response: The redirect response that would exceed the limit.
            max_redirects: Configured maximum.
        """
        super().__init__(
            f"Redirected {max_redirects} times. Aborting.",
            descriptor=response.descriptor,
            response=response,
            code="ERR_TOO_MANY_REDIRECTS",
        )
        self.max_redirects = max_redirects


class HTTPError(CourierError):
    """The final response carried a non-2xx status."""

    error_class = ErrorClass.HTTP_STATUS

    def __init__(self, response: "Response") -> None:
        """Initialize the HTTP status error.

        Args:
            response: The error-status response, with its parsed body.
        """
        super().__init__(
            f"Response code {response.status_code} ({response.reason_phrase})",
            descriptor=response.descriptor,
            response=response,
            code="ERR_NON_2XX_3XX_RESPONSE",
        )


class ParseError(CourierError):
    """The response body could not be decoded as the requested type."""

    error_class = ErrorClass.PARSE

    def __init__(self, cause: Exception, response: "Response") -> None:
        """Initialize the parse error.

        Args:
            cause: The decoder exception.
            response: The already-resolved response (raw text as body).
        """
        super().__init__(
            f'{cause} in "{response.url}"',
            descriptor=response.descriptor,
            response=response,
            code="ERR_BODY_PARSE_FAILURE",
        )
        self.cause = cause


class CancelError(CourierError):
    """The caller canceled the request."""

    error_class = ErrorClass.CANCELED

    def __init__(self, descriptor: "RequestDescriptor | None" = None) -> None:
        """Initialize the cancellation error.

        Args:
            descriptor: Request descriptor in flight when canceled.
        """
        super().__init__(
            "Request was canceled", descriptor=descriptor, code="ERR_CANCELED"
        )
