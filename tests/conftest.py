"""Shared pytest fixtures."""

from collections.abc import Generator

import pytest

from courier.observability.metrics import RequestMetrics


@pytest.fixture(autouse=True)
def reset_metrics() -> Generator[None]:
    """Start every test with fresh process-wide metrics."""
    RequestMetrics.reset()
    yield
    RequestMetrics.reset()
