"""Prometheus metrics collection and export.

All metrics live in a private ``CollectorRegistry`` so only FitConnect's own
series are exposed at ``/metrics``.

Metric Types:
    Counters:
        - http_requests_total: HTTP requests by status, path template, method
        - service_operations_total: Service calls by operation and outcome
        - errors_total: Errors by type and component
        - side_effect_failures_total: Swallowed activity/notification failures

    Histograms:
        - http_request_duration_seconds: HTTP request latency
        - service_operation_duration_seconds: Service call latency

Usage:
    ```python
    from fitconnect.metrics import track_operation

    class FeedService:
        @track_operation("get_feed")
        def get_feed(self, viewer_id, limit=None, offset=0):
            ...
    ```

References:
    - Prometheus Python Client: https://github.com/prometheus/client_python
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from typing import Any, TypeVar

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from fitconnect.errors import FitConnectError

F = TypeVar("F", bound=Callable[..., Any])

registry = CollectorRegistry()

DEFAULT_LATENCY_BUCKETS = (
    0.001,  # 1ms
    0.005,  # 5ms
    0.01,   # 10ms
    0.05,   # 50ms
    0.1,    # 100ms
    0.25,   # 250ms
    0.5,    # 500ms
    1.0,    # 1s
    2.5,    # 2.5s
)

HTTP_LATENCY_BUCKETS = (
    0.005,  # 5ms
    0.01,   # 10ms
    0.025,  # 25ms
    0.05,   # 50ms
    0.1,    # 100ms
    0.25,   # 250ms
    0.5,    # 500ms
    1.0,    # 1s
    2.5,    # 2.5s
)


# ========== COUNTER METRICS ==========

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    labelnames=["status", "path", "method"],
    registry=registry,
)
"""Counter for HTTP requests.

Labels:
    status: HTTP status code (e.g., "200", "404")
    path: Route template (e.g., "/api/posts/{post_id}") so ids do not explode cardinality
    method: HTTP method
"""

service_operations_total = Counter(
    "service_operations_total",
    "Total number of service operations",
    labelnames=["operation", "status"],
    registry=registry,
)
"""Counter for service operations.

Labels:
    operation: Operation name (e.g., "get_feed", "send_connection_request")
    status: "success", "rejected" (typed client error) or "error"
"""

errors_total = Counter(
    "errors_total",
    "Total number of errors encountered",
    labelnames=["error_type", "component"],
    registry=registry,
)

side_effect_failures_total = Counter(
    "side_effect_failures_total",
    "Secondary writes (activities, notifications) that failed and were skipped",
    labelnames=["kind"],
    registry=registry,
)


# ========== HISTOGRAM METRICS ==========

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "Duration of HTTP requests in seconds",
    labelnames=["status", "path", "method"],
    buckets=HTTP_LATENCY_BUCKETS,
    registry=registry,
)

service_operation_duration_seconds = Histogram(
    "service_operation_duration_seconds",
    "Duration of service operations in seconds",
    labelnames=["operation"],
    buckets=DEFAULT_LATENCY_BUCKETS,
    registry=registry,
)


# ========== HELPER FUNCTIONS ==========


def track_operation(operation: str) -> Callable[[F], F]:
    """Decorator recording count, outcome and latency of a service call.

    Typed ``FitConnectError`` failures are counted as ``rejected``; anything
    else is ``error`` and also increments ``errors_total``. The exception is
    always re-raised.

    Args:
        operation: Operation label value

    Example:
        >>> @track_operation("like_post")
        ... def like(self, post_id, account_id): ...
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except FitConnectError:
                status = "rejected"
                raise
            except Exception as exc:
                status = "error"
                errors_total.labels(error_type=type(exc).__name__, component=operation).inc()
                raise
            finally:
                service_operations_total.labels(operation=operation, status=status).inc()
                service_operation_duration_seconds.labels(operation=operation).observe(
                    time.perf_counter() - start
                )

        return wrapper  # type: ignore[return-value]

    return decorator


def generate_metrics_output() -> bytes:
    """Render the private registry in Prometheus text exposition format."""
    return generate_latest(registry)


def sample_value(name: str, labels: dict[str, str] | None = None) -> float:
    """Current value of a sample, or 0.0 when it has not been observed yet.

    Example:
        >>> sample_value("service_operations_total", {"operation": "get_feed", "status": "success"})
        3.0
    """
    value = registry.get_sample_value(name, labels or {})
    return value if value is not None else 0.0


__all__ = [
    "registry",
    "http_requests_total",
    "service_operations_total",
    "errors_total",
    "side_effect_failures_total",
    "http_request_duration_seconds",
    "service_operation_duration_seconds",
    "track_operation",
    "generate_metrics_output",
    "sample_value",
    "DEFAULT_LATENCY_BUCKETS",
    "HTTP_LATENCY_BUCKETS",
]
