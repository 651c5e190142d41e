"""Option normalization: layer merging and descriptor resolution.

Turns the caller's url-or-options input and the client's default layers into
one frozen ``RequestDescriptor``. Every configuration problem is reported here,
before any network I/O happens.
"""

import base64
import json
import warnings
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog
from pydantic import ValidationError

from courier.cache.storage import CacheStorage
from courier.constants import (
    ACCEPT_ENCODING_DECOMPRESS,
    ACCEPT_ENCODING_IDENTITY,
    BODYLESS_METHODS,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_USER_AGENT,
    FORM_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    SUPPORTED_PROTOCOLS,
)
from courier.errors import ConfigurationError
from courier.options.models import (
    Hooks,
    Options,
    RequestDescriptor,
    ResponseType,
    RetryOptions,
    Timeouts,
    merge_header_pairs,
)
from courier.settings import CourierSettings
from courier.transport.protocols import CookieJar, Resolver


logger = structlog.get_logger()

# Deprecated option name -> canonical option name
DEPRECATED_ALIASES: dict[str, str] = {"query": "search_params"}

_warned_aliases: set[str] = set()


def default_options(settings: CourierSettings | None = None) -> Options:
    """Build the base option layer from settings.

    Args:
        settings: Settings to read; loaded from the environment when omitted.

    Returns:
        Options layer holding the library defaults.
    """
    settings = settings or CourierSettings()
    return Options(
        method="GET",
        user_agent=settings.user_agent,
        retry=RetryOptions(limit=settings.retry_limit),
        timeout=Timeouts(request=settings.timeout_seconds),
        hooks=Hooks(),
        follow_redirect=True,
        max_redirects=settings.max_redirects,
        response_type=ResponseType.TEXT.value,
        resolve_body_only=False,
        decompress=settings.decompress,
        throw_http_errors=True,
        is_stream=False,
        allow_get_body=False,
        ignore_invalid_cookies=False,
    )


def build_options(
    url_or_options: "str | httpx.URL | Mapping[str, Any] | Options | None" = None,
    /,
    **kwargs: Any,
) -> Options:
    """Resolve the caller's url-or-options shape into one options layer.

    Args:
        url_or_options: A URL string, ``httpx.URL``, mapping, or Options.
        **kwargs: Additional options; they win over a mapping argument.

    Returns:
        Validated Options layer.

    Raises:
        ConfigurationError: If the input shape or any option is invalid.
    """
    if isinstance(url_or_options, Options):
        if not kwargs:
            return _rewrite_deprecated(url_or_options)
        return merge_options(url_or_options, _validate(kwargs))

    if url_or_options is None:
        data = dict(kwargs)
    elif isinstance(url_or_options, str | httpx.URL):
        if "url" in kwargs:
            msg = "The URL was given both positionally and as the `url` option"
            raise ConfigurationError(msg, url=str(url_or_options))
        data = {"url": url_or_options, **kwargs}
    elif isinstance(url_or_options, Mapping):
        data = {**url_or_options, **kwargs}
    else:
        msg = (
            "Expected a URL string or an options mapping, "
            f"got {type(url_or_options).__name__}"
        )
        raise ConfigurationError(msg)

    return _validate(data)


def options_to_dict(options: Options) -> dict[str, Any]:
    """Get the explicitly set fields of an options layer.

    Args:
        options: Options layer.

    Returns:
        Mutable dictionary keyed by field name.
    """
    return {name: getattr(options, name) for name in options.model_fields_set}


def _validate(data: Mapping[str, Any]) -> Options:
    data = dict(data)
    for key in ("url", "prefix_url"):
        if isinstance(data.get(key), httpx.URL):
            data[key] = str(data[key])
    try:
        options = Options.model_validate(data)
    except ValidationError as exc:
        url = data.get("url")
        msg = f"Invalid options: {exc}"
        raise ConfigurationError(
            msg, url=url if isinstance(url, str) else None
        ) from exc
    return _rewrite_deprecated(options)


def _rewrite_deprecated(options: Options) -> Options:
    for alias, canonical in DEPRECATED_ALIASES.items():
        value = getattr(options, alias)
        if value is None:
            continue
        if getattr(options, canonical) is not None:
            msg = f"The `{alias}` and `{canonical}` options cannot be combined"
            raise ConfigurationError(msg, url=options.url)
        _warn_deprecated(alias, canonical)
        options = options.model_copy(update={canonical: value, alias: None})
    return options


def _warn_deprecated(alias: str, canonical: str) -> None:
    if alias in _warned_aliases:
        return
    _warned_aliases.add(alias)
    logger.warning("deprecated_option", option=alias, replacement=canonical)
    warnings.warn(
        f"The `{alias}` option is deprecated. Use `{canonical}` instead.",
        DeprecationWarning,
        stacklevel=4,
    )


def merge_options(*layers: Options | None) -> Options:
    """Merge option layers; later layers win.

    Keys override one by one, except ``headers`` (per header, case-insensitive),
    ``hooks`` (appended in order), ``retry`` and ``timeout`` (per field), and
    ``context`` (per key).

    Args:
        *layers: Option layers from lowest to highest precedence.

    Returns:
        Merged Options layer.
    """
    merged: dict[str, Any] = {}
    for layer in layers:
        if layer is None:
            continue
        for name in layer.model_fields_set:
            value = getattr(layer, name)
            if value is None:
                continue
            current = merged.get(name)
            if current is None:
                merged[name] = _merge_headers({}, value) if name == "headers" else value
            elif name == "headers":
                merged[name] = _merge_headers(current, value)
            elif name == "hooks":
                merged[name] = current.merge(value)
            elif name in ("retry", "timeout"):
                merged[name] = current.model_copy(
                    update={key: getattr(value, key) for key in value.model_fields_set}
                )
            elif name == "context":
                merged[name] = {**current, **value}
            else:
                merged[name] = value
    return Options(**merged)


def _merge_headers(
    current: Mapping[str, str | None],
    updates: Mapping[str, str | None],
) -> dict[str, str | None]:
    merged = dict(current)
    for name, value in updates.items():
        merged[name.lower()] = value
    return merged


def normalize(options: Options) -> RequestDescriptor:
    """Resolve a merged options layer into a request descriptor.

    Args:
        options: Merged options (defaults already applied).

    Returns:
        Frozen RequestDescriptor.

    Raises:
        ConfigurationError: If the URL, body, response type, or a
            collaborator is invalid.
    """
    options = _rewrite_deprecated(options)
    method = (options.method or "GET").upper()
    url, authorization = _extract_credentials(options, _resolve_url(options, method))
    response_type = _resolve_response_type(options.response_type, method, url)
    body, content_type = _encode_body(options, method, url)

    decompress = options.decompress if options.decompress is not None else True
    headers: dict[str, str | None] = {
        "user-agent": options.user_agent or DEFAULT_USER_AGENT,
        "accept-encoding": (
            ACCEPT_ENCODING_DECOMPRESS if decompress else ACCEPT_ENCODING_IDENTITY
        ),
    }
    if response_type is ResponseType.JSON or options.json_body is not None:
        headers["accept"] = JSON_CONTENT_TYPE
    if content_type is not None:
        headers["content-type"] = content_type
    if authorization is not None:
        headers["authorization"] = authorization
    if isinstance(body, bytes):
        headers["content-length"] = str(len(body))
    header_pairs = merge_header_pairs((), headers)
    header_pairs = merge_header_pairs(header_pairs, options.headers or {})

    timeout = options.timeout or Timeouts()
    retry = options.retry or RetryOptions()
    if retry.max_retry_after_ms is None and timeout.request is not None:
        retry = retry.model_copy(update={"max_retry_after_ms": timeout.request * 1000})

    return RequestDescriptor(
        method=method,
        url=str(url),
        headers=header_pairs,
        body=body,
        timeout=timeout,
        retry=retry,
        hooks=options.hooks or Hooks(),
        follow_redirect=_flag(options.follow_redirect, True),
        max_redirects=(
            options.max_redirects
            if options.max_redirects is not None
            else DEFAULT_MAX_REDIRECTS
        ),
        response_type=response_type,
        resolve_body_only=_flag(options.resolve_body_only, False),
        encoding=options.encoding,
        decompress=decompress,
        throw_http_errors=_flag(options.throw_http_errors, True),
        is_stream=_flag(options.is_stream, False),
        cache=_collaborator(options.cache, CacheStorage, "cache", method, url),
        cookie_jar=_collaborator(
            options.cookie_jar, CookieJar, "cookie_jar", method, url
        ),
        ignore_invalid_cookies=_flag(options.ignore_invalid_cookies, False),
        dns_cache=_collaborator(options.dns_cache, Resolver, "dns_cache", method, url),
        max_body_size=options.max_body_size,
        context=dict(options.context or {}),
    )


def _flag(value: bool | None, default: bool) -> bool:
    return default if value is None else value


def _resolve_url(options: Options, method: str) -> httpx.URL:
    raw = options.url or ""
    if options.prefix_url:
        if raw.startswith("/"):
            msg = "`url` must not start with a slash when using `prefix_url`"
            raise ConfigurationError(msg, method=method, url=raw)
        prefix = options.prefix_url
        if not prefix.endswith("/"):
            prefix += "/"
        raw = prefix + raw

    if not raw:
        msg = "Missing `url` option"
        raise ConfigurationError(msg, method=method)

    try:
        url = httpx.URL(raw)
    except httpx.InvalidURL as exc:
        msg = f"Invalid URL: {raw}"
        raise ConfigurationError(msg, method=method) from exc

    if url.scheme not in SUPPORTED_PROTOCOLS:
        msg = f'Unsupported protocol "{url.scheme}" in URL: {raw}'
        raise ConfigurationError(msg, method=method)
    if not url.host:
        msg = f"No hostname in URL: {raw}"
        raise ConfigurationError(msg, method=method)

    search_params = options.search_params
    if isinstance(search_params, str):
        url = url.copy_with(query=search_params.lstrip("?").encode("utf-8") or None)
    elif search_params is not None:
        url = url.copy_with(
            params={key: _param_value(value) for key, value in search_params.items()}
        )

    return url.copy_with(fragment=None)


def _extract_credentials(
    options: Options, url: httpx.URL
) -> tuple[httpx.URL, str | None]:
    """Turn URL userinfo and the username/password options into Basic auth.

    Options win over the URL. The returned URL never carries userinfo.

    Args:
        options: Merged options layer.
        url: Resolved request URL.

    Returns:
        The URL without userinfo and the Authorization value, if any.
    """
    username = options.username if options.username is not None else url.username
    password = options.password if options.password is not None else url.password
    if url.userinfo:
        url = url.copy_with(userinfo=b"")
    if not username and not password:
        return url, None
    token = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
    return url, f"Basic {token}"


def _param_value(value: str | int | float | bool | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _resolve_response_type(
    value: str | None,
    method: str,
    url: httpx.URL,
) -> ResponseType:
    if value is None:
        return ResponseType.TEXT
    try:
        return ResponseType(value)
    except ValueError:
        msg = f"Failed to parse body of type '{value}' ({method} {url})"
        raise ConfigurationError(msg, method=method, url=str(url)) from None


def _encode_body(
    options: Options,
    method: str,
    url: httpx.URL,
) -> tuple[Any, str | None]:
    provided = [
        name
        for name, value in (
            ("body", options.body),
            ("json", options.json_body),
            ("form", options.form),
        )
        if value is not None
    ]
    if len(provided) > 1:
        msg = "The `body`, `json` and `form` options are mutually exclusive"
        raise ConfigurationError(msg, method=method, url=str(url))

    body: Any = None
    content_type: str | None = None
    if options.json_body is not None:
        try:
            body = json.dumps(options.json_body).encode("utf-8")
        except (TypeError, ValueError) as exc:
            msg = f"The `json` option is not serializable: {exc}"
            raise ConfigurationError(msg, method=method, url=str(url)) from exc
        content_type = JSON_CONTENT_TYPE
    elif options.form is not None:
        body = urlencode(options.form, doseq=True).encode("utf-8")
        content_type = FORM_CONTENT_TYPE
    elif options.body is not None:
        body = options.body
        if isinstance(body, str):
            body = body.encode("utf-8")
        elif isinstance(body, bytearray | memoryview):
            body = bytes(body)
        elif not isinstance(body, bytes) and not hasattr(body, "__aiter__"):
            msg = "The `body` option must be bytes, str, or an async iterable of bytes"
            raise ConfigurationError(msg, method=method, url=str(url))

    if body is not None and method in BODYLESS_METHODS:
        if method == "HEAD" or not options.allow_get_body:
            msg = f"The `{method}` method cannot be used with a body"
            raise ConfigurationError(msg, method=method, url=str(url))

    return body, content_type


def _collaborator(
    value: Any,
    protocol: type,
    name: str,
    method: str,
    url: httpx.URL,
) -> Any:
    if value is None or value is False:
        return None
    if not isinstance(value, protocol):
        msg = f"The `{name}` option does not implement {protocol.__name__}"
        raise ConfigurationError(msg, method=method, url=str(url))
    return value
