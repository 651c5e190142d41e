"""Retry coordination."""

from courier.retry.coordinator import (
    RetryCoordinator,
    backoff_delay,
    compute_default_delay,
    parse_retry_after,
)
from courier.retry.models import (
    RetryContext,
    RetryRequest,
    RetryState,
    retry_with_merged_options,
)


__all__ = [
    "RetryContext",
    "RetryCoordinator",
    "RetryRequest",
    "RetryState",
    "backoff_delay",
    "compute_default_delay",
    "parse_retry_after",
    "retry_with_merged_options",
]
