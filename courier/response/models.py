"""Data models for received responses."""

import time
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

import httpx

from courier.constants import (
    HTTP_STATUS_NOT_MODIFIED,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_REDIRECT_MAX,
)


if TYPE_CHECKING:
    from courier.options.models import RequestDescriptor


@dataclass
class Timings:
    """Monotonic timestamps (seconds) for the phases of one attempt.

    Attributes:
        start: Request started.
        socket: A connection was acquired.
        lookup: DNS lookup finished.
        connect: TCP connection established.
        secure_connect: TLS handshake finished.
        upload: Request fully sent.
        response: Response headers received.
        end: Response body fully received.
        error: The attempt failed.
    """

    start: float = field(default_factory=time.perf_counter)
    socket: float | None = None
    lookup: float | None = None
    connect: float | None = None
    secure_connect: float | None = None
    upload: float | None = None
    response: float | None = None
    end: float | None = None
    error: float | None = None

    def mark(self, phase: str) -> None:
        """Record the current time for a phase if not already recorded.

        Args:
            phase: Timing attribute name.
        """
        if getattr(self, phase) is None:
            setattr(self, phase, time.perf_counter())

    def phases(self) -> dict[str, float | None]:
        """Compute phase durations in milliseconds.

        Returns:
            Mapping of phase name to duration, None when unmeasured.
        """

        def span(begin: float | None, finish: float | None) -> float | None:
            if begin is None or finish is None:
                return None
            return round((finish - begin) * 1000, 3)

        connected = self.secure_connect or self.connect or self.socket
        return {
            "wait": span(self.start, self.socket),
            "dns": span(self.socket, self.lookup),
            "tcp": span(self.lookup or self.socket, self.connect),
            "tls": span(self.connect, self.secure_connect),
            "request": span(connected, self.upload),
            "first_byte": span(self.upload, self.response),
            "download": span(self.response, self.end),
            "total": span(self.start, self.end or self.error),
        }


@dataclass
class Response:
    """A received HTTP response, owned by the engine until settled.

    ``raw_body`` holds the assembled bytes; ``body`` holds the parsed
    representation (or None in streaming mode).
    """

    status_code: int
    headers: httpx.Headers
    url: str
    descriptor: "RequestDescriptor"
    reason_phrase: str = ""
    http_version: str = "HTTP/1.1"
    raw_body: bytes | None = None
    body: Any = None
    request_url: str = ""
    redirect_urls: list[str] = field(default_factory=list)
    retry_count: int = 0
    is_from_cache: bool = False
    ip: str | None = None
    timings: Timings = field(default_factory=Timings)

    def __post_init__(self) -> None:
        if not self.reason_phrase:
            try:
                self.reason_phrase = HTTPStatus(self.status_code).phrase
            except ValueError:
                self.reason_phrase = "Unknown"
        if not self.request_url:
            self.request_url = self.descriptor.url

    @property
    def ok(self) -> bool:
        """Check whether the status counts as success.

        2xx and 304 always do; 3xx does when redirects are not followed.
        """
        limit = (
            HTTP_STATUS_OK_MAX
            if self.descriptor.follow_redirect
            else HTTP_STATUS_REDIRECT_MAX
        )
        return (
            HTTP_STATUS_OK_MIN <= self.status_code < limit
            or self.status_code == HTTP_STATUS_NOT_MODIFIED
        )

    @property
    def content_type(self) -> str | None:
        """Get the Content-Type header."""
        return self.headers.get("content-type")

    @property
    def charset(self) -> str | None:
        """Get the charset declared in the Content-Type header."""
        content_type = self.content_type
        if not content_type:
            return None
        for part in content_type.split(";")[1:]:
            key, _, value = part.strip().partition("=")
            if key.lower() == "charset" and value:
                return value.strip("'\"")
        return None

    @property
    def hostname(self) -> str:
        """Get the hostname of the final URL."""
        return httpx.URL(self.url).host
