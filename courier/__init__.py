"""Asynchronous HTTP request client.

Requests are issued through a ``Courier`` client and return a
``CancelableRequest``: await it for the response, cancel it, or iterate it
in stream mode.
"""

from courier.cache.storage import CacheStorage, MemoryCacheStorage
from courier.client import Courier
from courier.errors import (
    CancelError,
    ConfigurationError,
    CourierError,
    ErrorClass,
    HTTPError,
    MaxRedirectsError,
    ParseError,
    ReadError,
    RequestTimeoutError,
    TransportError,
)
from courier.observability.logging import (
    configure_logging,
    configure_logging_from_settings,
)
from courier.observability.metrics import RequestMetrics
from courier.options.models import (
    Hooks,
    Options,
    RequestDescriptor,
    ResponseType,
    RetryOptions,
    Timeouts,
)
from courier.response.models import Response, Timings
from courier.result.cancelable import CancelableRequest
from courier.result.state_machine import ResultState
from courier.retry.models import RetryContext, RetryRequest, retry_with_merged_options
from courier.settings.app import CourierSettings, get_settings
from courier.transport.cookies import HttpxCookieJar
from courier.transport.dns import CachingResolver
from courier.transport.events import DownloadProgress, LifecycleEvent


__all__ = [
    "CacheStorage",
    "CachingResolver",
    "CancelError",
    "CancelableRequest",
    "ConfigurationError",
    "Courier",
    "CourierError",
    "CourierSettings",
    "DownloadProgress",
    "ErrorClass",
    "HTTPError",
    "Hooks",
    "HttpxCookieJar",
    "LifecycleEvent",
    "MaxRedirectsError",
    "MemoryCacheStorage",
    "Options",
    "ParseError",
    "ReadError",
    "RequestDescriptor",
    "RequestMetrics",
    "RequestTimeoutError",
    "Response",
    "ResponseType",
    "ResultState",
    "RetryContext",
    "RetryOptions",
    "RetryRequest",
    "Timeouts",
    "Timings",
    "TransportError",
    "configure_logging",
    "configure_logging_from_settings",
    "get_settings",
    "retry_with_merged_options",
]
