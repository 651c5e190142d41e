"""Unit tests for request metrics."""

import httpx
import pytest

from courier.errors import HTTPError
from courier.observability.metrics import FORCED_RETRY, RequestMetrics
from tests.helpers.http import RecordingHandler, fast_delay, mock_client


class TestRequestMetrics:
    """Tests for the metrics singleton."""

    def test_singleton(self) -> None:
        """Test that every caller shares one instance until reset."""
        first = RequestMetrics.get_instance()

        assert RequestMetrics.get_instance() is first
        RequestMetrics.reset()
        assert RequestMetrics.get_instance() is not first

    def test_record_requests(self) -> None:
        """Test per-status counts, bytes, and the redirect hop histogram."""
        metrics = RequestMetrics.get_instance()

        metrics.record_request(200, 100, 0, 5.0)
        metrics.record_request(200, 50, 2, 5.0)
        metrics.record_request(404, 0, 1, 5.0)

        assert metrics.requests_by_status == {200: 2, 404: 1}
        assert metrics.redirect_hops == {0: 1, 2: 1, 1: 1}
        assert metrics.redirect_total == 3
        assert metrics.bytes_received == 150
        assert metrics.completed_total == 3

    def test_retries_by_error_class(self) -> None:
        """Test that retries are keyed by the error class behind them."""
        metrics = RequestMetrics.get_instance()

        metrics.record_retry("HTTP_STATUS")
        metrics.record_retry("HTTP_STATUS")
        metrics.record_retry("TRANSPORT")
        metrics.record_retry(None)

        assert metrics.retries_by_error_class == {
            "HTTP_STATUS": 2,
            "TRANSPORT": 1,
            FORCED_RETRY: 1,
        }
        assert metrics.retry_total == 4

    def test_cache_hits(self) -> None:
        """Test that fresh hits and revalidations are told apart."""
        metrics = RequestMetrics.get_instance()

        metrics.record_cache_hit(revalidated=False)
        metrics.record_cache_hit(revalidated=True)
        metrics.record_cache_hit(revalidated=True)

        assert metrics.cache_hits == {"fresh": 1, "revalidated": 2}
        assert metrics.cache_hit_total == 3

    def test_average_duration_includes_failures(self) -> None:
        """Test that the average covers every settled request."""
        metrics = RequestMetrics.get_instance()
        assert metrics.avg_duration_ms == 0.0

        metrics.record_request(200, 0, 0, 30.0)
        metrics.record_failure("TIMEOUT", 10.0)

        assert metrics.failures_by_error_class == {"TIMEOUT": 1}
        assert metrics.settled_count == 2
        assert metrics.avg_duration_ms == 20.0
        assert metrics.to_dict()["avg_duration_ms"] == 20.0


class TestEngineMetrics:
    """Tests for the metrics the engine records while running requests."""

    @pytest.mark.asyncio
    async def test_retry_and_redirect_recorded(self) -> None:
        """Test that a retried, redirected request lands in the right buckets."""
        handler = RecordingHandler(
            httpx.Response(503),
            httpx.Response(302, headers={"location": "/a"}),
            httpx.Response(302, headers={"location": "/b"}),
            httpx.Response(200, content=b"done"),
        )

        await mock_client(handler).get(
            "https://example.com/", retry={"calculate_delay": fast_delay}
        )

        metrics = RequestMetrics.get_instance()
        assert metrics.retries_by_error_class == {"HTTP_STATUS": 1}
        assert metrics.redirect_hops == {2: 1}
        assert metrics.requests_by_status == {200: 1}
        assert metrics.bytes_received == 4

    @pytest.mark.asyncio
    async def test_failure_recorded(self) -> None:
        """Test that a terminal error is counted by class."""
        handler = RecordingHandler(httpx.Response(404))

        with pytest.raises(HTTPError):
            await mock_client(handler).get("https://example.com/")

        metrics = RequestMetrics.get_instance()
        assert metrics.failures_by_error_class == {"HTTP_STATUS": 1}
        assert metrics.completed_total == 0
        assert metrics.settled_count == 1
