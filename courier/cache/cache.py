"""Response cache: key derivation, freshness, and revalidation.

Encapsulates the cache logic the engine consults before invoking the
transport and after a cacheable response completes.
"""

import time
from email.utils import parsedate_to_datetime

import httpx
import structlog
from pydantic import ValidationError

from courier.awaitables import maybe_await
from courier.cache.models import CachedResponse
from courier.cache.storage import CacheStorage
from courier.constants import (
    CACHE_KEY_PREFIX,
    CACHEABLE_METHODS,
    CACHEABLE_STATUS_CODES,
    HTTP_STATUS_NOT_MODIFIED,
)
from courier.options.models import RequestDescriptor
from courier.redact import redact_url_credentials
from courier.response.models import Response


logger = structlog.get_logger()

# Headers of a 304 that must not overwrite the stored representation's
_REPRESENTATION_HEADERS = frozenset(
    {"content-length", "content-encoding", "transfer-encoding", "content-range"}
)


def cache_key(descriptor: RequestDescriptor) -> str:
    """Derive the storage key for a request.

    Args:
        descriptor: Request descriptor.

    Returns:
        Key of the form ``courier:<METHOD>:<url>``.
    """
    return f"{CACHE_KEY_PREFIX}:{descriptor.method}:{descriptor.url}"


def parse_cache_control(value: str | None) -> dict[str, str | None]:
    """Parse a Cache-Control header into directives.

    Args:
        value: Header value.

    Returns:
        Lower-case directive names mapped to their argument (or None).
    """
    directives: dict[str, str | None] = {}
    if not value:
        return directives
    for part in value.split(","):
        name, sep, argument = part.strip().partition("=")
        if name:
            directives[name.lower()] = argument.strip('"') if sep else None
    return directives


def _seconds(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _http_date(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError):
        return None


def freshness_lifetime(headers: httpx.Headers, now: float) -> float | None:
    """Compute how long a response stays fresh.

    Precedence: ``s-maxage``, ``max-age``, then ``expires`` relative to
    ``date``. The ``age`` header is subtracted.

    Args:
        headers: Response headers.
        now: Epoch seconds when the response was received.

    Returns:
        Lifetime in seconds, or None when the response carries none.
    """
    directives = parse_cache_control(headers.get("cache-control"))
    if "no-cache" in directives:
        return 0.0

    lifetime = _seconds(directives.get("s-maxage"))
    if lifetime is None:
        lifetime = _seconds(directives.get("max-age"))
    if lifetime is None and "expires" in headers:
        expires = _http_date(headers.get("expires"))
        date = _http_date(headers.get("date")) or now
        # An unparseable Expires means already expired
        lifetime = max(0.0, expires - date) if expires is not None else 0.0
    if lifetime is None:
        return None

    age = _seconds(headers.get("age")) or 0.0
    return max(0.0, lifetime - age)


class ResponseCache:
    """Serves and stores responses through a ``CacheStorage`` adapter.

    Handles:
    - Key derivation from method and URL, with Vary matching
    - Freshness from Cache-Control and Expires
    - Revalidation via If-None-Match / If-Modified-Since and 304 merging
    """

    def __init__(self, storage: CacheStorage) -> None:
        """Initialize the cache.

        Args:
            storage: Key-value storage adapter.
        """
        self._storage = storage
        self._log = logger.bind(component="cache")

    @staticmethod
    def applies_to(descriptor: RequestDescriptor) -> bool:
        """Check whether the cache may be consulted for a request.

        Args:
            descriptor: Request descriptor.

        Returns:
            True for GET/HEAD requests that do not forbid storage.
        """
        if descriptor.method not in CACHEABLE_METHODS:
            return False
        directives = parse_cache_control(descriptor.header("cache-control"))
        return "no-store" not in directives

    async def lookup(self, descriptor: RequestDescriptor) -> CachedResponse | None:
        """Find a stored entry matching the request.

        Args:
            descriptor: Request descriptor.

        Returns:
            Matching entry (fresh or stale), or None.
        """
        if not self.applies_to(descriptor):
            return None

        key = cache_key(descriptor)
        raw = await maybe_await(self._storage.get(key))
        if raw is None:
            return None
        try:
            entry = CachedResponse.model_validate_json(raw)
        except ValidationError as exc:
            self._log.warning("cache_entry_invalid", key=key, error=str(exc))
            await maybe_await(self._storage.delete(key))
            return None

        for name, value in entry.vary.items():
            if descriptor.header(name) != value:
                self._log.debug("cache_vary_mismatch", key=key, header=name)
                return None
        return entry

    @staticmethod
    def is_fresh(descriptor: RequestDescriptor, entry: CachedResponse) -> bool:
        """Check whether an entry may be served without contacting the origin.

        Args:
            descriptor: Request descriptor.
            entry: Stored entry.

        Returns:
            True if fresh and the request does not demand revalidation.
        """
        directives = parse_cache_control(descriptor.header("cache-control"))
        if "no-cache" in directives or directives.get("max-age") == "0":
            return False
        return entry.is_fresh()

    @staticmethod
    def conditional_headers(
        descriptor: RequestDescriptor,
        entry: CachedResponse,
    ) -> dict[str, str]:
        """Build revalidation headers the caller has not already set.

        Args:
            descriptor: Request descriptor.
            entry: Stale entry.

        Returns:
            Dictionary with If-None-Match and/or If-Modified-Since headers.
        """
        headers: dict[str, str] = {}
        if entry.etag and descriptor.header("if-none-match") is None:
            headers["if-none-match"] = entry.etag
        if entry.last_modified and descriptor.header("if-modified-since") is None:
            headers["if-modified-since"] = entry.last_modified
        return headers

    @staticmethod
    def to_response(entry: CachedResponse, descriptor: RequestDescriptor) -> Response:
        """Rebuild a response from a stored entry.

        Args:
            entry: Stored entry.
            descriptor: Descriptor of the current request.

        Returns:
            Response flagged ``is_from_cache``, body not yet parsed.
        """
        return Response(
            status_code=entry.status_code,
            headers=httpx.Headers(entry.headers),
            url=entry.url,
            descriptor=descriptor,
            reason_phrase=entry.reason_phrase,
            http_version=entry.http_version,
            raw_body=entry.body,
            redirect_urls=list(entry.redirect_urls),
            retry_count=descriptor.retry_count,
            is_from_cache=True,
        )

    async def revalidated(
        self,
        descriptor: RequestDescriptor,
        entry: CachedResponse,
        not_modified: Response,
    ) -> Response:
        """Merge a 304 into the stored entry and serve the stored body.

        Args:
            descriptor: Request descriptor.
            entry: Stale entry that was revalidated.
            not_modified: The 304 response.

        Returns:
            Response rebuilt from the refreshed entry.
        """
        headers = httpx.Headers(entry.headers)
        for name, value in not_modified.headers.items():
            if name not in _REPRESENTATION_HEADERS:
                headers[name] = value

        refreshed = self._snapshot(
            descriptor,
            status_code=entry.status_code,
            url=entry.url,
            reason_phrase=entry.reason_phrase,
            http_version=entry.http_version,
            headers=headers,
            body=entry.body,
            redirect_urls=entry.redirect_urls,
        )
        if refreshed is not None:
            await self._write(descriptor, refreshed)

        self._log.debug(
            "cache_revalidated",
            url=redact_url_credentials(descriptor.url),
            status_code=entry.status_code,
        )
        response = self.to_response(refreshed or entry, descriptor)
        response.timings = not_modified.timings
        return response

    async def store(self, descriptor: RequestDescriptor, response: Response) -> bool:
        """Store a completed response when it is cacheable.

        Args:
            descriptor: Descriptor that produced the response.
            response: Response with its raw body assembled.

        Returns:
            True if the response was stored.
        """
        if response.is_from_cache or not self.applies_to(descriptor):
            return False
        if response.status_code not in CACHEABLE_STATUS_CODES:
            return False

        entry = self._snapshot(
            descriptor,
            status_code=response.status_code,
            url=response.url,
            reason_phrase=response.reason_phrase,
            http_version=response.http_version,
            headers=response.headers,
            body=response.raw_body or b"",
            redirect_urls=response.redirect_urls,
        )
        if entry is None:
            return False
        await self._write(descriptor, entry)
        self._log.debug(
            "cache_store",
            url=redact_url_credentials(descriptor.url),
            status_code=response.status_code,
            etag=entry.etag is not None,
            last_modified=entry.last_modified is not None,
        )
        return True

    def _snapshot(
        self,
        descriptor: RequestDescriptor,
        *,
        status_code: int,
        url: str,
        reason_phrase: str,
        http_version: str,
        headers: httpx.Headers,
        body: bytes,
        redirect_urls: list[str],
    ) -> CachedResponse | None:
        directives = parse_cache_control(headers.get("cache-control"))
        if "no-store" in directives or "private" in directives:
            return None

        vary_names = [
            name.strip().lower()
            for name in headers.get("vary", "").split(",")
            if name.strip()
        ]
        if "*" in vary_names:
            return None

        now = time.time()
        lifetime = freshness_lifetime(headers, now)
        etag = headers.get("etag")
        last_modified = headers.get("last-modified")
        if lifetime is None and etag is None and last_modified is None:
            return None

        return CachedResponse(
            method=descriptor.method,
            url=url,
            status_code=status_code,
            reason_phrase=reason_phrase,
            http_version=http_version,
            headers=list(headers.multi_items()),
            body_b64=CachedResponse.encode_body(body),
            redirect_urls=list(redirect_urls),
            vary={name: descriptor.header(name) for name in vary_names},
            etag=etag,
            last_modified=last_modified,
            stored_at=now,
            expires_at=now + lifetime if lifetime is not None else None,
        )

    async def _write(
        self,
        descriptor: RequestDescriptor,
        entry: CachedResponse,
    ) -> None:
        # Revalidatable entries are kept past expiry
        ttl = None
        if not entry.has_validators and entry.expires_at is not None:
            ttl = max(0.0, entry.expires_at - entry.stored_at)
        await maybe_await(
            self._storage.set(cache_key(descriptor), entry.model_dump_json(), ttl)
        )


def is_not_modified(response: Response) -> bool:
    """Check whether a response answers a conditional request with 304."""
    return response.status_code == HTTP_STATUS_NOT_MODIFIED
