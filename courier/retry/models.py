"""Data models for the retry coordinator."""

from dataclasses import dataclass, field
from typing import Any

from courier.errors import CourierError
from courier.options.models import Options, RetryOptions
from courier.options.normalizer import build_options


@dataclass
class RetryState:
    """Retry bookkeeping for one logical request.

    Attributes:
        attempt_count: Resubmissions performed so far.
        errors: Every error that was considered for a retry, oldest first.
        last_delay_ms: Delay computed for the most recent resubmission.
    """

    attempt_count: int = 0
    errors: list[CourierError] = field(default_factory=list)
    last_delay_ms: float = 0.0


@dataclass(frozen=True)
class RetryContext:
    """Value handed to a ``calculate_delay`` strategy.

    Attributes:
        attempt_count: Number of the attempt being considered (1-based).
        retry_options: Retry configuration of the request.
        error: Error that triggered the decision.
        computed_value: Delay in milliseconds the default strategy chose;
            0 means the default strategy would not retry.
    """

    attempt_count: int
    retry_options: RetryOptions
    error: CourierError
    computed_value: float


@dataclass(frozen=True)
class RetryRequest:
    """Returned by an ``after_response`` hook to force a retry.

    Attributes:
        options: Options merged over the request's options before resubmitting.
    """

    options: Options | None = None


def retry_with_merged_options(
    options: "Options | dict[str, Any] | None" = None,
    /,
    **kwargs: Any,
) -> RetryRequest:
    """Request a retry with updated options from an ``after_response`` hook.

    Args:
        options: Options (or mapping) merged over the current ones.
        **kwargs: Additional options.

    Returns:
        RetryRequest to return from the hook.

    Raises:
        ConfigurationError: If the updated options are invalid.
    """
    if options is None and not kwargs:
        return RetryRequest()
    return RetryRequest(options=build_options(options, **kwargs))
