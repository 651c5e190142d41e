"""Hook pipeline."""

from courier.hooks.pipeline import (
    run_after_response,
    run_before_error,
    run_before_redirect,
    run_before_request,
    run_before_retry,
    run_init_hooks,
)


__all__ = [
    "run_after_response",
    "run_before_error",
    "run_before_redirect",
    "run_before_request",
    "run_before_retry",
    "run_init_hooks",
]
