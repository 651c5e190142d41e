"""Redirect following: next-descriptor computation for 3xx responses."""

import httpx
import structlog

from courier.constants import (
    METHOD_REWRITE_STATUS_CODES,
    REDIRECT_STATUS_CODES,
    SEE_OTHER_STATUS_CODE,
    SUPPORTED_PROTOCOLS,
)
from courier.errors import MaxRedirectsError, TransportError
from courier.options.models import RequestDescriptor
from courier.redact import redact_url_credentials
from courier.response.models import Response


logger = structlog.get_logger()

# Methods downgraded to GET on 301/302
REWRITTEN_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# Headers describing a body that is dropped on downgrade
BODY_HEADERS = ("content-type", "content-length", "transfer-encoding")

# Headers that never cross an origin boundary
CREDENTIAL_HEADERS = ("authorization", "cookie")

_DEFAULT_PORTS = {"http": 80, "https": 443}


def is_redirect(response: Response) -> bool:
    """Check whether a response is a followable redirect.

    Args:
        response: Received response.

    Returns:
        True for a redirect status carrying a Location header.
    """
    return (
        response.status_code in REDIRECT_STATUS_CODES
        and "location" in response.headers
    )


def _effective_port(url: httpx.URL) -> int | None:
    return url.port or _DEFAULT_PORTS.get(url.scheme)


def keeps_credentials(source: httpx.URL, target: httpx.URL) -> bool:
    """Decide whether credential headers may follow a redirect.

    They may when scheme, host, and port all match, or when the redirect
    upgrades http to https on the same host with default ports.

    Args:
        source: URL that answered with the redirect.
        target: Redirect target.

    Returns:
        True when credentials may be kept.
    """
    if (source.scheme, source.host, _effective_port(source)) == (
        target.scheme,
        target.host,
        _effective_port(target),
    ):
        return True
    return (
        source.scheme == "http"
        and target.scheme == "https"
        and source.host == target.host
        and _effective_port(source) == _DEFAULT_PORTS["http"]
        and _effective_port(target) == _DEFAULT_PORTS["https"]
    )


class RedirectFollower:
    """Computes the descriptor for the next hop of a redirect chain.

    Never mutates the current descriptor; every hop is a new descriptor
    carrying the extended redirect chain.
    """

    def next_descriptor(
        self,
        descriptor: RequestDescriptor,
        response: Response,
    ) -> RequestDescriptor | None:
        """Compute the next hop for a redirect response.

        Args:
            descriptor: Descriptor that produced the response.
            response: Received response.

        Returns:
            Descriptor for the next hop, or None when the response is final.

        Raises:
            MaxRedirectsError: If the chain already holds ``max_redirects`` URLs.
            TransportError: If the Location header is not a usable URL.
        """
        if not descriptor.follow_redirect or not is_redirect(response):
            return None

        if not descriptor.has_replayable_body:
            logger.debug(
                "redirect_not_followed",
                component="redirect",
                reason="streamed_body",
                url=redact_url_credentials(descriptor.url),
            )
            return None

        if len(descriptor.redirect_urls) >= descriptor.max_redirects:
            raise MaxRedirectsError(response, descriptor.max_redirects)

        source = descriptor.parsed_url
        target = self._resolve_location(descriptor, response)

        method = descriptor.method
        body = descriptor.body
        updates: dict[str, str | None] = {}

        status = response.status_code
        downgrade = (status == SEE_OTHER_STATUS_CODE and method != "HEAD") or (
            status in METHOD_REWRITE_STATUS_CODES and method in REWRITTEN_METHODS
        )
        if downgrade:
            method = "GET"
            body = None
            updates.update(dict.fromkeys(BODY_HEADERS))

        if not keeps_credentials(source, target):
            updates.update(dict.fromkeys(CREDENTIAL_HEADERS))
        if target.host != source.host or target.port != source.port:
            updates["host"] = None

        url = str(target)
        return descriptor.with_headers(updates).evolve(
            method=method,
            url=url,
            body=body,
            redirect_urls=(*descriptor.redirect_urls, url),
        )

    @staticmethod
    def _resolve_location(
        descriptor: RequestDescriptor,
        response: Response,
    ) -> httpx.URL:
        location = response.headers["location"]
        try:
            target = descriptor.parsed_url.join(location)
        except httpx.InvalidURL as exc:
            msg = f"Invalid redirect location: {location}"
            raise TransportError(
                msg,
                descriptor=descriptor,
                response=response,
                code="ERR_INVALID_REDIRECT",
            ) from exc
        if target.scheme not in SUPPORTED_PROTOCOLS or not target.host:
            msg = f"Unsupported redirect location: {location}"
            raise TransportError(
                msg,
                descriptor=descriptor,
                response=response,
                code="ERR_INVALID_REDIRECT",
            )
        return target.copy_with(fragment=None)
