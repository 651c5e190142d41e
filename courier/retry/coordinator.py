"""Retry decisions and backoff delays."""

import random
from dataclasses import replace
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

import structlog

from courier.awaitables import maybe_await
from courier.constants import (
    HTTP_STATUS_PAYLOAD_TOO_LARGE,
    PRE_SEND_ERROR_CODES,
    RETRY_AFTER_STATUS_CODES,
    RETRY_BACKOFF_BASE_MS,
    RETRY_JITTER_MS,
)
from courier.errors import CourierError, HTTPError, TransportError
from courier.options.models import RequestDescriptor, RetryOptions
from courier.retry.models import RetryContext, RetryState


logger = structlog.get_logger()


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header value.

    Args:
        value: Header value (seconds or HTTP date).

    Returns:
        Milliseconds to wait, or None if not parseable.
    """
    if not value:
        return None

    # Try parsing as seconds
    try:
        return max(0.0, float(value)) * 1000
    except ValueError:
        pass

    # Try parsing as HTTP date
    try:
        dt = parsedate_to_datetime(value)
        delta = dt - datetime.now(UTC)
        return max(0.0, delta.total_seconds() * 1000)
    except (ValueError, TypeError):
        pass

    return None


def backoff_delay(attempt_count: int) -> float:
    """Exponential backoff with jitter.

    Args:
        attempt_count: Attempt being scheduled (1-based).

    Returns:
        Delay in milliseconds.
    """
    noise = random.random() * RETRY_JITTER_MS  # noqa: S311
    return 2 ** (attempt_count - 1) * RETRY_BACKOFF_BASE_MS + noise


def compute_default_delay(context: RetryContext) -> float:
    """Default retry strategy.

    Args:
        context: Attempt number, retry options, and triggering error.

    Returns:
        Delay in milliseconds, or 0 to not retry.
    """
    options = context.retry_options
    error = context.error
    if context.attempt_count > options.limit:
        return 0

    descriptor = error.descriptor
    if descriptor is not None and not descriptor.has_replayable_body:
        return 0

    has_method = (error.method or "").upper() in options.methods
    response = error.response
    if response is not None and not isinstance(error, TransportError):
        if not has_method or response.status_code not in options.status_codes:
            return 0
        delay = backoff_delay(context.attempt_count)
        if response.status_code in RETRY_AFTER_STATUS_CODES:
            retry_after = parse_retry_after(response.headers.get("retry-after"))
            if retry_after is not None:
                limit = options.max_retry_after_ms
                if limit is not None and retry_after > limit:
                    return 0
                return max(retry_after, delay)
            if response.status_code == HTTP_STATUS_PAYLOAD_TOO_LARGE:
                return 0
        return delay

    if error.code not in options.error_codes:
        return 0
    if not has_method and error.code not in PRE_SEND_ERROR_CODES:
        return 0
    return backoff_delay(context.attempt_count)


class RetryCoordinator:
    """Decides whether a failed attempt is resubmitted, and after how long.

    Only transport and HTTP status errors within the attempt limit are
    candidates. For those, a configured ``calculate_delay`` strategy receives
    the default strategy's result and has the final word; a non-positive
    result vetoes the retry.
    """

    async def next_delay(
        self,
        state: RetryState,
        error: CourierError,
        descriptor: RequestDescriptor,
    ) -> float:
        """Compute the delay before the next attempt.

        Records the error in the retry state; on a positive delay the
        attempt counter is advanced.

        Args:
            state: Retry state of the logical request.
            error: Error that ended the current attempt.
            descriptor: Descriptor of the current attempt.

        Returns:
            Delay in milliseconds, or 0 when the error must propagate.
        """
        state.errors.append(error)
        retry_options: RetryOptions = descriptor.retry
        context = RetryContext(
            attempt_count=state.attempt_count + 1,
            retry_options=retry_options,
            error=error,
            computed_value=0,
        )
        context = replace(context, computed_value=compute_default_delay(context))

        delay = context.computed_value
        retryable = isinstance(error, TransportError | HTTPError)
        within_limit = context.attempt_count <= retry_options.limit
        if not retryable or not within_limit or not descriptor.has_replayable_body:
            delay = 0
        elif retry_options.calculate_delay is not None:
            delay = await maybe_await(retry_options.calculate_delay(context))

        if delay is None or delay <= 0:
            logger.debug(
                "retry_vetoed",
                component="retry",
                attempt=context.attempt_count,
                code=error.code,
            )
            return 0

        state.attempt_count = context.attempt_count
        state.last_delay_ms = float(delay)
        return state.last_delay_ms

    def force(self, state: RetryState, descriptor: RequestDescriptor) -> bool:
        """Account for a retry requested by an ``after_response`` hook.

        Args:
            state: Retry state of the logical request.
            descriptor: Descriptor of the current attempt.

        Returns:
            True when the retry limit still allows another attempt.
        """
        if state.attempt_count + 1 > descriptor.retry.limit:
            return False
        state.attempt_count += 1
        state.last_delay_ms = 0.0
        return True
