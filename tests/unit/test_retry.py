"""Unit tests for retry decisions and backoff."""

from typing import Any

import pytest

from courier.errors import (
    CancelError,
    ConfigurationError,
    HTTPError,
    RequestTimeoutError,
    TransportError,
)
from courier.options.models import RequestDescriptor
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
from tests.helpers.http import make_descriptor, make_response


def _context(error: Any, attempt_count: int = 1) -> RetryContext:
    return RetryContext(
        attempt_count=attempt_count,
        retry_options=error.descriptor.retry,
        error=error,
        computed_value=0,
    )


def _status_error(
    descriptor: RequestDescriptor,
    status_code: int,
    headers: dict[str, str] | None = None,
) -> HTTPError:
    return HTTPError(make_response(descriptor, status_code, headers))


class TestParseRetryAfter:
    """Tests for Retry-After header parsing."""

    def test_seconds(self) -> None:
        """Test that delta-seconds are converted to milliseconds."""
        assert parse_retry_after("2") == 2000.0

    def test_past_date(self) -> None:
        """Test that a date in the past means no wait."""
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0

    def test_invalid(self) -> None:
        """Test that unparseable values are ignored."""
        assert parse_retry_after("soon") is None
        assert parse_retry_after(None) is None
        assert parse_retry_after("") is None


class TestBackoffDelay:
    """Tests for exponential backoff."""

    def test_first_attempt(self) -> None:
        """Test the first delay is one second plus jitter."""
        delay = backoff_delay(1)

        assert 1000 <= delay < 1100

    def test_doubles_per_attempt(self) -> None:
        """Test that the base delay doubles per attempt."""
        delay = backoff_delay(3)

        assert 4000 <= delay < 4100


class TestComputeDefaultDelay:
    """Tests for the default retry strategy."""

    def test_retryable_error_code(self) -> None:
        """Test that retryable error codes are retried for GET."""
        error = TransportError("reset", descriptor=make_descriptor(), code="ECONNRESET")

        assert compute_default_delay(_context(error)) >= 1000

    def test_timeout_is_retryable(self) -> None:
        """Test that timeouts carry a retryable code."""
        error = RequestTimeoutError("socket", 1.0, descriptor=make_descriptor())

        assert compute_default_delay(_context(error)) > 0

    def test_unknown_error_code(self) -> None:
        """Test that unknown error codes are not retried."""
        error = TransportError("boom", descriptor=make_descriptor(), code="ERR_X")

        assert compute_default_delay(_context(error)) == 0

    def test_limit_exceeded(self) -> None:
        """Test that attempts past the limit are not retried."""
        error = TransportError(
            "reset", descriptor=make_descriptor(retry=1), code="ECONNRESET"
        )

        assert compute_default_delay(_context(error, attempt_count=2)) == 0

    def test_non_idempotent_method(self) -> None:
        """Test that POST is not retried after the request was sent."""
        descriptor = make_descriptor(method="POST", body=b"x")
        error = TransportError("reset", descriptor=descriptor, code="ECONNRESET")

        assert compute_default_delay(_context(error)) == 0

    def test_non_idempotent_method_pre_send_failure(self) -> None:
        """Test that POST is retried when the connection never opened."""
        descriptor = make_descriptor(method="POST", body=b"x")
        error = TransportError("refused", descriptor=descriptor, code="ECONNREFUSED")

        assert compute_default_delay(_context(error)) > 0

    def test_retryable_status(self) -> None:
        """Test that retryable status codes are retried."""
        error = _status_error(make_descriptor(), 503)

        assert compute_default_delay(_context(error)) >= 1000

    def test_non_retryable_status(self) -> None:
        """Test that client errors are not retried."""
        error = _status_error(make_descriptor(), 404)

        assert compute_default_delay(_context(error)) == 0

    def test_retry_after_is_a_floor(self) -> None:
        """Test that Retry-After wins over a shorter backoff."""
        error = _status_error(make_descriptor(), 429, {"retry-after": "5"})

        assert compute_default_delay(_context(error)) == 5000.0

    def test_retry_after_beyond_cap(self) -> None:
        """Test that a Retry-After above the cap cancels the retry."""
        error = _status_error(make_descriptor(timeout=1), 503, {"retry-after": "5"})

        assert compute_default_delay(_context(error)) == 0

    def test_payload_too_large_without_retry_after(self) -> None:
        """Test that 413 is only retried when the server says when."""
        error = _status_error(make_descriptor(), 413)

        assert compute_default_delay(_context(error)) == 0

    def test_streamed_body_never_retried(self) -> None:
        """Test that a body that cannot be replayed is never retried."""

        async def chunks():  # type: ignore[no-untyped-def]
            yield b"x"

        descriptor = make_descriptor(method="PUT", body=chunks())
        error = TransportError("reset", descriptor=descriptor, code="ECONNRESET")

        assert compute_default_delay(_context(error)) == 0


class TestRetryCoordinator:
    """Tests for the retry coordinator."""

    @pytest.mark.asyncio
    async def test_positive_delay_advances_attempts(self) -> None:
        """Test that a scheduled retry advances the attempt counter."""
        descriptor = make_descriptor(retry={"calculate_delay": lambda ctx: 7})
        error = TransportError("reset", descriptor=descriptor, code="ECONNRESET")
        state = RetryState()

        delay = await RetryCoordinator().next_delay(state, error, descriptor)

        assert delay == 7.0
        assert state.attempt_count == 1
        assert state.last_delay_ms == 7.0
        assert state.errors == [error]

    @pytest.mark.asyncio
    async def test_strategy_receives_default_decision(self) -> None:
        """Test that the strategy sees the default delay and attempt number."""
        seen: list[RetryContext] = []

        def strategy(context: RetryContext) -> float:
            seen.append(context)
            return 1

        descriptor = make_descriptor(retry={"calculate_delay": strategy})
        error = _status_error(descriptor, 404)

        await RetryCoordinator().next_delay(RetryState(), error, descriptor)

        assert len(seen) == 1
        assert seen[0].attempt_count == 1
        assert seen[0].computed_value == 0
        assert seen[0].error is error

    @pytest.mark.asyncio
    async def test_strategy_veto(self) -> None:
        """Test that a non-positive strategy result vetoes the retry."""
        descriptor = make_descriptor(retry={"calculate_delay": lambda ctx: 0})
        error = _status_error(descriptor, 503)
        state = RetryState()

        delay = await RetryCoordinator().next_delay(state, error, descriptor)

        assert delay == 0
        assert state.attempt_count == 0

    @pytest.mark.asyncio
    async def test_async_strategy(self) -> None:
        """Test that coroutine strategies are awaited."""

        async def strategy(context: RetryContext) -> float:
            return 3

        descriptor = make_descriptor(retry={"calculate_delay": strategy})
        error = TransportError("reset", descriptor=descriptor, code="ECONNRESET")

        delay = await RetryCoordinator().next_delay(RetryState(), error, descriptor)

        assert delay == 3.0

    @pytest.mark.asyncio
    async def test_non_retryable_errors_skip_strategy(self) -> None:
        """Test that configuration and cancel errors are never retried."""
        calls: list[RetryContext] = []
        descriptor = make_descriptor(
            retry={"calculate_delay": lambda ctx: calls.append(ctx) or 5}
        )

        for error in (
            ConfigurationError("bad", descriptor=descriptor),
            CancelError(descriptor),
        ):
            delay = await RetryCoordinator().next_delay(RetryState(), error, descriptor)
            assert delay == 0

        assert calls == []

    @pytest.mark.asyncio
    async def test_limit_bounds_strategy(self) -> None:
        """Test that the strategy cannot extend the attempt limit."""
        calls: list[RetryContext] = []
        descriptor = make_descriptor(
            retry={"limit": 1, "calculate_delay": lambda ctx: calls.append(ctx) or 5}
        )
        error = TransportError("reset", descriptor=descriptor, code="ECONNRESET")
        state = RetryState(attempt_count=1)

        delay = await RetryCoordinator().next_delay(state, error, descriptor)

        assert delay == 0
        assert calls == []

    def test_force_respects_limit(self) -> None:
        """Test that hook-requested retries count toward the limit."""
        descriptor = make_descriptor(retry=1)
        state = RetryState()
        coordinator = RetryCoordinator()

        assert coordinator.force(state, descriptor) is True
        assert coordinator.force(state, descriptor) is False
        assert state.attempt_count == 1


class TestRetryWithMergedOptions:
    """Tests for the hook retry factory."""

    def test_without_options(self) -> None:
        """Test a plain retry request."""
        assert retry_with_merged_options() == RetryRequest()

    def test_with_options(self) -> None:
        """Test that updated options are validated."""
        request = retry_with_merged_options(headers={"authorization": "token"})

        assert request.options is not None
        assert request.options.headers == {"authorization": "token"}

    def test_invalid_options(self) -> None:
        """Test that invalid updates fail immediately."""
        with pytest.raises(ConfigurationError):
            retry_with_merged_options(unknown_option=True)
