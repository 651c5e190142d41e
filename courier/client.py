"""Client surface: instance defaults, shorthand methods, and extension."""

from collections.abc import Callable, Mapping, Sequence
from types import TracebackType
from typing import Any

import httpx
import structlog

from courier.engine import RequestEngine
from courier.errors import ConfigurationError
from courier.hooks.pipeline import run_init_hooks
from courier.options.models import Hooks, Options
from courier.options.normalizer import (
    build_options,
    default_options,
    merge_options,
    normalize,
    options_to_dict,
)
from courier.result.cancelable import CancelableRequest
from courier.settings import CourierSettings, get_settings
from courier.transport.agents import AgentPool


logger = structlog.get_logger()

UrlOrOptions = str | httpx.URL | Mapping[str, Any] | Options | None
Dispatch = Callable[[Options], CancelableRequest]
Handler = Callable[[Options, Dispatch], CancelableRequest]


class Courier:
    """HTTP client issuing cancelable requests through shared agents.

    Option layers, lowest precedence first: settings-derived library
    defaults, the instance ``defaults``, then the per-call options.

    Instance defaults are immutable unless the client is created with
    ``mutable_defaults=True``; ``extend`` derives a new client instead.
    """

    def __init__(
        self,
        defaults: Mapping[str, Any] | Options | None = None,
        *,
        agents: Mapping[str, httpx.AsyncBaseTransport] | None = None,
        settings: CourierSettings | None = None,
        mutable_defaults: bool = False,
        handlers: Sequence[Handler] = (),
    ) -> None:
        """Initialize the client.

        Args:
            defaults: Instance option layer applied to every request.
            agents: Transport per protocol; a shared pooled transport is
                created on first use when omitted.
            settings: Settings for the base layer; read from the environment
                when omitted.
            mutable_defaults: Allow ``update_defaults`` on this instance.
            handlers: Middleware wrapping every request, outermost first.
                Each is called as ``handler(options, next)`` with the merged
                options and must return ``next(options)`` or a request it
                built from it.

        Raises:
            ConfigurationError: If the defaults or handlers are invalid.
        """
        self._settings = settings or get_settings()
        self._pool = AgentPool(agents)
        self._engine = RequestEngine(self._pool)
        self._mutable_defaults = mutable_defaults
        self._handlers = _checked_handlers(handlers)
        self._defaults = merge_options(
            default_options(self._settings),
            build_options(defaults) if defaults is not None else None,
        )

    @property
    def defaults(self) -> Options:
        """Get the merged default option layer."""
        return self._defaults

    @property
    def settings(self) -> CourierSettings:
        """Get the settings the base layer was built from."""
        return self._settings

    def request(
        self,
        url_or_options: UrlOrOptions = None,
        /,
        **options: Any,
    ) -> CancelableRequest:
        """Issue a request.

        Args:
            url_or_options: URL string, ``httpx.URL``, options mapping, or
                Options.
            **options: Per-call options; they win over a mapping argument.

        Returns:
            CancelableRequest; await it for the response.

        Raises:
            ConfigurationError: If the options are invalid. Raised before any
                network I/O.
        """
        raw = self._raw_options(url_or_options, options)
        run_init_hooks(self._init_hooks(raw), raw)
        merged = merge_options(self._defaults, build_options(raw))
        dispatch: Dispatch = self._dispatch
        for handler in reversed(self._handlers):
            dispatch = _wrap(handler, dispatch)
        return dispatch(merged)

    def _dispatch(self, options: Options) -> CancelableRequest:
        descriptor = normalize(options)
        return CancelableRequest(self._engine, descriptor, options)

    def get(
        self,
        url_or_options: UrlOrOptions = None,
        /,
        **options: Any,
    ) -> CancelableRequest:
        """Issue a GET request."""
        return self.request(url_or_options, **{**options, "method": "GET"})

    def post(
        self,
        url_or_options: UrlOrOptions = None,
        /,
        **options: Any,
    ) -> CancelableRequest:
        """Issue a POST request."""
        return self.request(url_or_options, **{**options, "method": "POST"})

    def put(
        self,
        url_or_options: UrlOrOptions = None,
        /,
        **options: Any,
    ) -> CancelableRequest:
        """Issue a PUT request."""
        return self.request(url_or_options, **{**options, "method": "PUT"})

    def patch(
        self,
        url_or_options: UrlOrOptions = None,
        /,
        **options: Any,
    ) -> CancelableRequest:
        """Issue a PATCH request."""
        return self.request(url_or_options, **{**options, "method": "PATCH"})

    def head(
        self,
        url_or_options: UrlOrOptions = None,
        /,
        **options: Any,
    ) -> CancelableRequest:
        """Issue a HEAD request."""
        return self.request(url_or_options, **{**options, "method": "HEAD"})

    def delete(
        self,
        url_or_options: UrlOrOptions = None,
        /,
        **options: Any,
    ) -> CancelableRequest:
        """Issue a DELETE request."""
        return self.request(url_or_options, **{**options, "method": "DELETE"})

    def options(
        self,
        url_or_options: UrlOrOptions = None,
        /,
        **options: Any,
    ) -> CancelableRequest:
        """Issue an OPTIONS request."""
        return self.request(url_or_options, **{**options, "method": "OPTIONS"})

    def trace(
        self,
        url_or_options: UrlOrOptions = None,
        /,
        **options: Any,
    ) -> CancelableRequest:
        """Issue a TRACE request."""
        return self.request(url_or_options, **{**options, "method": "TRACE"})

    def stream(
        self,
        url_or_options: UrlOrOptions = None,
        /,
        **options: Any,
    ) -> CancelableRequest:
        """Issue a request whose body is consumed with ``async for``."""
        return self.request(url_or_options, **{**options, "is_stream": True})

    def extend(
        self,
        defaults: Mapping[str, Any] | Options | None = None,
        /,
        *,
        handlers: Sequence[Handler] = (),
        **options: Any,
    ) -> "Courier":
        """Derive a client whose defaults are merged over this one's.

        The derived client shares this client's agents and runs this client's
        handlers before its own.

        Args:
            defaults: Option layer to merge over the current defaults.
            handlers: Additional middleware, appended after the inherited ones.
            **options: Additional options.

        Returns:
            New client; this one is left untouched.
        """
        child = Courier.__new__(Courier)
        child._settings = self._settings
        child._pool = self._pool
        child._engine = self._engine
        child._mutable_defaults = self._mutable_defaults
        child._handlers = (*self._handlers, *_checked_handlers(handlers))
        child._defaults = merge_options(
            self._defaults, build_options(defaults, **options)
        )
        return child

    def update_defaults(self, **options: Any) -> None:
        """Merge options into this instance's defaults in place.

        Args:
            **options: Options to merge.

        Raises:
            ConfigurationError: If the client was not created with
                ``mutable_defaults=True``, or the options are invalid.
        """
        if not self._mutable_defaults:
            msg = (
                "Client defaults are immutable; create the client with "
                "`mutable_defaults=True` or derive one with `extend()`"
            )
            raise ConfigurationError(msg)
        self._defaults = merge_options(self._defaults, build_options(**options))
        logger.debug(
            "defaults_updated", component="client", options=sorted(options)
        )

    async def aclose(self) -> None:
        """Close the agents and their pooled connections."""
        await self._pool.aclose()

    async def __aenter__(self) -> "Courier":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    @staticmethod
    def _raw_options(
        url_or_options: UrlOrOptions,
        options: dict[str, Any],
    ) -> dict[str, Any]:
        if url_or_options is None:
            return dict(options)
        if isinstance(url_or_options, str | httpx.URL):
            if "url" in options:
                msg = "The URL was given both positionally and as the `url` option"
                raise ConfigurationError(msg, url=str(url_or_options))
            return {"url": str(url_or_options), **options}
        if isinstance(url_or_options, Options):
            return {**options_to_dict(url_or_options), **options}
        if isinstance(url_or_options, Mapping):
            return {**url_or_options, **options}
        msg = (
            "Expected a URL string or an options mapping, "
            f"got {type(url_or_options).__name__}"
        )
        raise ConfigurationError(msg)

    def _init_hooks(self, raw: Mapping[str, Any]) -> Hooks:
        hooks = self._defaults.hooks or Hooks()
        call_hooks = raw.get("hooks")
        if isinstance(call_hooks, Hooks):
            return hooks.merge(Hooks(init=call_hooks.init))
        if isinstance(call_hooks, Mapping) and call_hooks.get("init"):
            return hooks.merge(Hooks(init=tuple(call_hooks["init"])))
        return hooks


def _checked_handlers(handlers: Sequence[Handler]) -> tuple[Handler, ...]:
    for handler in handlers:
        if not callable(handler):
            msg = f"Handlers must be callable, got {type(handler).__name__}"
            raise ConfigurationError(msg)
    return tuple(handlers)


def _wrap(handler: Handler, dispatch: Dispatch) -> Dispatch:
    def run(options: Options) -> CancelableRequest:
        return handler(options, dispatch)

    return run
