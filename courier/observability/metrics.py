"""Metrics collection for the request engine."""

from dataclasses import dataclass, field
from typing import Any, ClassVar


# Retry key for attempts forced by an after_response hook without an error
FORCED_RETRY = "FORCED"


def _bump(counter: dict[Any, int], key: Any) -> None:
    counter[key] = counter.get(key, 0) + 1


@dataclass
class RequestMetrics:
    """Metrics for HTTP request lifecycles.

    Singleton fed by the request engine, one call per engine decision:

    - a settled request (status, body bytes, redirect hops, duration)
    - a terminal failure, keyed by error class
    - a scheduled retry, keyed by the error class that caused it
    - a cache hit, either served fresh or after a 304 revalidation
    """

    requests_by_status: dict[int, int] = field(default_factory=dict)
    redirect_hops: dict[int, int] = field(default_factory=dict)
    retries_by_error_class: dict[str, int] = field(default_factory=dict)
    failures_by_error_class: dict[str, int] = field(default_factory=dict)
    cache_hits: dict[str, int] = field(default_factory=dict)
    bytes_received: int = 0
    duration_ms_total: float = 0.0
    settled_count: int = 0

    _instance: ClassVar["RequestMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "RequestMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_request(
        self,
        status_code: int,
        bytes_received: int,
        redirect_hops: int,
        duration_ms: float,
    ) -> None:
        """Record a request that settled with a response.

        Args:
            status_code: Status of the final response.
            bytes_received: Body bytes of the final response.
            redirect_hops: Redirects followed to reach it.
            duration_ms: Time from start to settlement in milliseconds.
        """
        _bump(self.requests_by_status, status_code)
        _bump(self.redirect_hops, redirect_hops)
        self.bytes_received += bytes_received
        self._settle(duration_ms)

    def record_failure(self, error_class: str, duration_ms: float) -> None:
        """Record a request that settled with an error.

        Args:
            error_class: ``ErrorClass`` value of the terminal error.
            duration_ms: Time from start to settlement in milliseconds.
        """
        _bump(self.failures_by_error_class, error_class)
        self._settle(duration_ms)

    def record_retry(self, error_class: str | None) -> None:
        """Record a scheduled retry.

        Args:
            error_class: ``ErrorClass`` value of the error being retried, or
                None when a hook forced the retry.
        """
        _bump(self.retries_by_error_class, error_class or FORCED_RETRY)

    def record_cache_hit(self, revalidated: bool) -> None:
        """Record a response served from the cache."""
        _bump(self.cache_hits, "revalidated" if revalidated else "fresh")

    def _settle(self, duration_ms: float) -> None:
        self.duration_ms_total += duration_ms
        self.settled_count += 1

    @property
    def completed_total(self) -> int:
        """Count requests that settled with a response."""
        return sum(self.requests_by_status.values())

    @property
    def retry_total(self) -> int:
        """Count scheduled retries of every kind."""
        return sum(self.retries_by_error_class.values())

    @property
    def redirect_total(self) -> int:
        """Count redirects followed by completed requests."""
        return sum(hops * count for hops, count in self.redirect_hops.items())

    @property
    def cache_hit_total(self) -> int:
        """Count responses served from the cache."""
        return sum(self.cache_hits.values())

    @property
    def avg_duration_ms(self) -> float:
        """Calculate average duration over settled requests.

        Returns:
            Average duration in milliseconds.
        """
        if self.settled_count == 0:
            return 0.0
        return self.duration_ms_total / self.settled_count

    def to_dict(self) -> dict[str, object]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "requests_by_status": dict(self.requests_by_status),
            "redirect_hops": dict(self.redirect_hops),
            "retries_by_error_class": dict(self.retries_by_error_class),
            "failures_by_error_class": dict(self.failures_by_error_class),
            "cache_hits": dict(self.cache_hits),
            "bytes_received": self.bytes_received,
            "avg_duration_ms": self.avg_duration_ms,
            "settled_count": self.settled_count,
        }
