"""Ordered user callbacks at the lifecycle extension points.

Every runner invokes the hooks registered for its extension point in
registration order, awaiting coroutine results before moving on. A hook that
raises aborts the pipeline; its exception propagates unchanged and becomes
the terminal error of the request.
"""

import inspect
from collections.abc import Callable, MutableMapping
from typing import Any

import structlog

from courier.awaitables import maybe_await
from courier.errors import ConfigurationError
from courier.options.models import Hooks, RequestDescriptor
from courier.response.models import Response
from courier.retry.models import RetryRequest


logger = structlog.get_logger()


def run_init_hooks(hooks: Hooks, raw_options: MutableMapping[str, Any]) -> None:
    """Run ``init`` hooks on the raw option mapping before validation.

    Args:
        hooks: Registered hooks.
        raw_options: Caller options; hooks mutate it in place.

    Raises:
        ConfigurationError: If a hook returns an awaitable.
    """
    for hook in hooks.init:
        result = hook(raw_options)
        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            msg = "`init` hooks must be synchronous"
            raise ConfigurationError(msg)


async def run_before_request(
    hooks: Hooks,
    descriptor: RequestDescriptor,
) -> RequestDescriptor | Response:
    """Run ``before_request`` hooks.

    A hook may return a replacement descriptor, or a Response, which
    short-circuits the network entirely.

    Args:
        hooks: Registered hooks.
        descriptor: Descriptor about to be sent.

    Returns:
        The descriptor to send, or a Response to use instead.
    """
    for hook in hooks.before_request:
        result = await maybe_await(hook(descriptor))
        if isinstance(result, Response):
            logger.debug("request_short_circuited", component="hooks")
            return result
        if isinstance(result, RequestDescriptor):
            descriptor = result
    return descriptor


async def run_before_redirect(
    hooks: Hooks,
    descriptor: RequestDescriptor,
    response: Response,
) -> RequestDescriptor:
    """Run ``before_redirect`` hooks.

    Args:
        hooks: Registered hooks.
        descriptor: Descriptor of the next hop.
        response: Redirect response being followed.

    Returns:
        The (possibly replaced) descriptor of the next hop.
    """
    for hook in hooks.before_redirect:
        result = await maybe_await(hook(descriptor, response))
        if isinstance(result, RequestDescriptor):
            descriptor = result
    return descriptor


async def run_before_retry(
    hooks: Hooks,
    descriptor: RequestDescriptor,
    error: Exception | None,
    retry_count: int,
) -> RequestDescriptor:
    """Run ``before_retry`` hooks.

    Args:
        hooks: Registered hooks.
        descriptor: Descriptor about to be resubmitted.
        error: Error that triggered the retry; None for a hook-requested retry.
        retry_count: Number of the upcoming retry (1-based).

    Returns:
        The (possibly replaced) descriptor to resubmit.
    """
    for hook in hooks.before_retry:
        result = await maybe_await(hook(descriptor, error, retry_count))
        if isinstance(result, RequestDescriptor):
            descriptor = result
    return descriptor


async def run_after_response(
    hooks: Hooks,
    response: Response,
    retry_with_merged_options: Callable[..., RetryRequest],
) -> Response | RetryRequest:
    """Run ``after_response`` hooks on a parsed response.

    Args:
        hooks: Registered hooks.
        response: Parsed response.
        retry_with_merged_options: Factory hooks call to request a retry.

    Returns:
        The (possibly replaced) response, or the RetryRequest a hook returned.
    """
    for hook in hooks.after_response:
        result = await maybe_await(hook(response, retry_with_merged_options))
        if isinstance(result, RetryRequest):
            return result
        if isinstance(result, Response):
            response = result
    return response


async def run_before_error(hooks: Hooks, error: Exception) -> Exception:
    """Run ``before_error`` hooks.

    Args:
        hooks: Registered hooks.
        error: Terminal error.

    Returns:
        The (possibly replaced) error to reject with.
    """
    for hook in hooks.before_error:
        result = await maybe_await(hook(error))
        if isinstance(result, Exception):
            error = result
    return error
