"""Body parsing into the requested representation."""

import codecs
import json
from typing import Any

import structlog

from courier.errors import ParseError
from courier.options.models import ResponseType
from courier.response.models import Response


logger = structlog.get_logger()

DEFAULT_CHARSET = "utf-8"


def resolve_charset(response: Response, encoding: str | None = None) -> str:
    """Pick the charset used to decode a body.

    Precedence: explicit ``encoding`` option, declared charset, utf-8.
    Unknown charsets fall back to utf-8.

    Args:
        response: Response whose headers declare a charset.
        encoding: Explicit override.

    Returns:
        Codec name.
    """
    for candidate in (encoding, response.charset):
        if not candidate:
            continue
        try:
            return codecs.lookup(candidate).name
        except LookupError:
            logger.debug("unknown_charset", component="parser", charset=candidate)
    return DEFAULT_CHARSET


def decode_text(response: Response, encoding: str | None = None) -> str:
    """Decode the raw body as text, replacing undecodable bytes.

    Args:
        response: Response with an assembled raw body.
        encoding: Explicit charset override.

    Returns:
        Decoded text.
    """
    raw = response.raw_body or b""
    return raw.decode(resolve_charset(response, encoding), errors="replace")


def parse_body(
    response: Response,
    response_type: ResponseType | str | None = None,
    encoding: str | None = None,
) -> Any:
    """Convert the raw body into the requested representation.

    Args:
        response: Response with an assembled raw body.
        response_type: Target representation; defaults to the descriptor's.
        encoding: Charset override; defaults to the descriptor's.

    Returns:
        bytes, str, or decoded JSON. An empty JSON body yields ``""``.

    Raises:
        ValueError: If the body is not valid JSON.
    """
    descriptor = response.descriptor
    kind = ResponseType(response_type or descriptor.response_type)
    if kind is ResponseType.BUFFER:
        return response.raw_body or b""

    text = decode_text(response, encoding or descriptor.encoding)
    if kind is ResponseType.TEXT:
        return text
    if text == "":
        return ""
    return json.loads(text)


def apply_body(response: Response) -> Response:
    """Attach the parsed body to a response.

    A decoding failure is an error only for "ok" responses; for any other
    status the raw text becomes the body so the HTTP status error wins.

    Args:
        response: Response with an assembled raw body.

    Returns:
        The same response, with ``body`` set.

    Raises:
        ParseError: If an ok response's body cannot be decoded.
    """
    try:
        response.body = parse_body(response)
    except ValueError as exc:
        response.body = decode_text(response, response.descriptor.encoding)
        if response.ok:
            raise ParseError(exc, response) from exc
        logger.debug(
            "body_parse_skipped",
            component="parser",
            status_code=response.status_code,
            error=str(exc),
        )
    return response
