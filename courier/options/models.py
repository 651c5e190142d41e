"""Data models for request options and the normalized request descriptor."""

from collections.abc import Callable, Mapping
from enum import Enum
from typing import Annotated, Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from courier.constants import (
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_RETRY_ERROR_CODES,
    DEFAULT_RETRY_LIMIT,
    DEFAULT_RETRY_METHODS,
    DEFAULT_RETRY_STATUS_CODES,
)


Hook = Callable[..., Any]


class ResponseType(str, Enum):
    """Representation the body parser produces.

    - BUFFER: raw bytes, unchanged
    - TEXT: decoded string
    - JSON: structured data decoded from JSON text
    """

    BUFFER = "buffer"
    TEXT = "text"
    JSON = "json"


class Timeouts(BaseModel):
    """Per-phase timeouts in seconds. ``None`` disables a phase limit.

    - lookup: DNS resolution through the configured resolver
    - connect: TCP connection establishment
    - secure_connect: TLS handshake
    - socket: idle time between received bytes
    - send: idle time while uploading the request
    - response: time from sending the request until headers arrive
    - request: total time for a single attempt, body included
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    lookup: Annotated[float | None, Field(gt=0)] = None
    connect: Annotated[float | None, Field(gt=0)] = None
    secure_connect: Annotated[float | None, Field(gt=0)] = None
    socket: Annotated[float | None, Field(gt=0)] = None
    send: Annotated[float | None, Field(gt=0)] = None
    response: Annotated[float | None, Field(gt=0)] = None
    request: Annotated[float | None, Field(gt=0)] = None


class RetryOptions(BaseModel):
    """Configuration for retry behavior.

    ``calculate_delay`` receives a ``RetryContext`` and returns the delay in
    milliseconds; a non-positive value vetoes the retry.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    limit: Annotated[int, Field(ge=0)] = DEFAULT_RETRY_LIMIT
    methods: frozenset[str] = DEFAULT_RETRY_METHODS
    status_codes: frozenset[int] = DEFAULT_RETRY_STATUS_CODES
    error_codes: frozenset[str] = DEFAULT_RETRY_ERROR_CODES
    calculate_delay: Callable[..., float] | None = None
    max_retry_after_ms: Annotated[float | None, Field(gt=0)] = None

    @field_validator("methods")
    @classmethod
    def upper_methods(cls, v: frozenset[str]) -> frozenset[str]:
        """Normalize method names to upper case."""
        return frozenset(method.upper() for method in v)


class Hooks(BaseModel):
    """Ordered user callbacks per extension point.

    Each callback may be a plain function or a coroutine function.
    ``init`` hooks are always synchronous since they run before a request
    object exists.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    init: tuple[Hook, ...] = ()
    before_request: tuple[Hook, ...] = ()
    before_redirect: tuple[Hook, ...] = ()
    before_retry: tuple[Hook, ...] = ()
    after_response: tuple[Hook, ...] = ()
    before_error: tuple[Hook, ...] = ()

    def merge(self, other: "Hooks") -> "Hooks":
        """Append the other layer's hooks after this layer's hooks.

        Args:
            other: The later layer.

        Returns:
            New Hooks with both layers in registration order.
        """
        return Hooks(
            **{
                name: getattr(self, name) + getattr(other, name)
                for name in Hooks.model_fields
            }
        )


class Options(BaseModel):
    """One layer of user-supplied request options.

    Every field is optional; ``None`` means "not set in this layer". Layers
    are combined by ``merge_options`` and resolved by ``normalize``.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    url: str | None = None
    prefix_url: str | None = None
    method: str | None = None
    headers: dict[str, str | None] | None = None
    search_params: dict[str, str | int | float | bool | None] | str | None = None
    query: dict[str, str | int | float | bool | None] | str | None = Field(
        default=None, description="Deprecated alias of search_params"
    )
    body: Any = None
    json_body: Any = Field(default=None, alias="json")
    form: dict[str, Any] | None = None
    timeout: Timeouts | None = None
    retry: RetryOptions | None = None
    hooks: Hooks | None = None
    follow_redirect: bool | None = None
    max_redirects: Annotated[int | None, Field(ge=0)] = None
    response_type: str | None = None
    resolve_body_only: bool | None = None
    encoding: str | None = None
    decompress: bool | None = None
    throw_http_errors: bool | None = None
    is_stream: bool | None = None
    allow_get_body: bool | None = None
    cache: Any = None
    cookie_jar: Any = None
    ignore_invalid_cookies: bool | None = None
    dns_cache: Any = None
    max_body_size: Annotated[int | None, Field(gt=0)] = None
    context: dict[str, Any] | None = None
    user_agent: str | None = None
    username: str | None = None
    password: str | None = None

    @model_validator(mode="before")
    @classmethod
    def expand_shorthands(cls, data: Any) -> Any:
        """Expand ``retry=<int>`` and ``timeout=<seconds>`` shorthands."""
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        retry = data.get("retry")
        if isinstance(retry, int) and not isinstance(retry, bool):
            data["retry"] = {"limit": retry}
        timeout = data.get("timeout")
        if isinstance(timeout, int | float) and not isinstance(timeout, bool):
            data["timeout"] = {"request": timeout}
        return data


class RequestDescriptor(BaseModel):
    """Fully resolved, immutable parameters for one request attempt.

    Created once per call by the normalizer. Redirect and retry cycles
    derive new descriptors through ``evolve`` and never mutate in place.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    method: str
    url: str
    headers: tuple[tuple[str, str], ...] = ()
    body: Any = None
    timeout: Timeouts = Field(default_factory=Timeouts)
    retry: RetryOptions = Field(default_factory=RetryOptions)
    hooks: Hooks = Field(default_factory=Hooks)
    follow_redirect: bool = True
    max_redirects: Annotated[int, Field(ge=0)] = DEFAULT_MAX_REDIRECTS
    response_type: ResponseType = ResponseType.TEXT
    resolve_body_only: bool = False
    encoding: str | None = None
    decompress: bool = True
    throw_http_errors: bool = True
    is_stream: bool = False
    cache: Any = None
    cookie_jar: Any = None
    ignore_invalid_cookies: bool = False
    dns_cache: Any = None
    max_body_size: int | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    retry_count: Annotated[int, Field(ge=0)] = 0
    redirect_urls: tuple[str, ...] = ()

    @property
    def parsed_url(self) -> httpx.URL:
        """Get the URL as an ``httpx.URL``."""
        return httpx.URL(self.url)

    @property
    def protocol(self) -> str:
        """Get the URL scheme (``http`` or ``https``)."""
        return self.parsed_url.scheme

    @property
    def hostname(self) -> str:
        """Get the host name without port."""
        return self.parsed_url.host

    @property
    def port(self) -> int | None:
        """Get the explicit port, or None for the scheme default."""
        return self.parsed_url.port

    @property
    def host(self) -> str:
        """Get host and explicit port as sent in the Host header."""
        return self.parsed_url.netloc.decode("ascii")

    @property
    def pathname(self) -> str:
        """Get the URL path without query."""
        return self.parsed_url.path

    @property
    def search(self) -> str:
        """Get the query string without the leading ``?``."""
        return self.parsed_url.query.decode("ascii")

    @property
    def path(self) -> str:
        """Get the path and query, as sent on the request line."""
        return self.parsed_url.raw_path.decode("ascii")

    @property
    def has_replayable_body(self) -> bool:
        """Check whether the body can be sent again on retry or redirect."""
        return self.body is None or isinstance(self.body, bytes)

    def header(self, name: str) -> str | None:
        """Get a header value by case-insensitive name.

        Args:
            name: Header name.

        Returns:
            Header value, or None if absent.
        """
        lowered = name.lower()
        for key, value in self.headers:
            if key == lowered:
                return value
        return None

    def headers_dict(self) -> dict[str, str]:
        """Get headers as an ordered dictionary."""
        return dict(self.headers)

    def with_headers(self, updates: Mapping[str, str | None]) -> "RequestDescriptor":
        """Derive a descriptor with headers set or removed.

        Args:
            updates: Header values to set; ``None`` removes the header.

        Returns:
            New descriptor with the updated headers.
        """
        return self.evolve(headers=merge_header_pairs(self.headers, updates))

    def evolve(self, **changes: Any) -> "RequestDescriptor":
        """Derive a new descriptor with the given fields replaced.

        Args:
            **changes: Field values to replace.

        Returns:
            New descriptor; this one is left untouched.
        """
        return self.model_copy(update=changes)


def merge_header_pairs(
    headers: tuple[tuple[str, str], ...],
    updates: Mapping[str, str | None],
) -> tuple[tuple[str, str], ...]:
    """Apply header updates, keeping insertion order and unique lower-case names.

    Args:
        headers: Existing header pairs.
        updates: Values to set; ``None`` removes the header.

    Returns:
        New tuple of header pairs.
    """
    merged = dict(headers)
    for name, value in updates.items():
        key = name.lower()
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = str(value)
    return tuple(merged.items())
