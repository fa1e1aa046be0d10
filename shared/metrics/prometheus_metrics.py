"""Prometheus metrics definitions and helpers.

Provides the metric definitions for the Testfachdienst components. Metric
objects register themselves on creation, so every group is built once per
process through :func:`setup_metrics`.
"""

from functools import lru_cache
from typing import Callable, NamedTuple

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class HttpMetrics:
    """HTTP request metrics."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status"],
            registry=registry,
        )

        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=registry,
        )

        self.requests_in_progress = Gauge(
            "http_requests_in_progress",
            "HTTP requests currently in progress",
            ["method"],
            registry=registry,
        )


class ErezeptMetrics:
    """Prescription operation metrics, split by channel (rest or stomp)."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.operations = Counter(
            "erezept_operations_total",
            "Total prescription operations",
            ["channel", "operation", "outcome"],
            registry=registry,
        )


class WebSocketMetrics:
    """STOMP over WebSocket metrics."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.sessions_active = Gauge(
            "websocket_sessions_active",
            "Currently open WebSocket sessions",
            registry=registry,
        )

        self.frames_received = Counter(
            "stomp_frames_received_total",
            "STOMP frames received from clients",
            ["command"],
            registry=registry,
        )

        self.messages_sent = Counter(
            "stomp_messages_sent_total",
            "STOMP MESSAGE frames delivered to subscribers",
            ["destination"],
            registry=registry,
        )


class JobMetrics:
    """Recurring job metrics."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.runs = Counter(
            "recurring_job_runs_total",
            "Total recurring job executions",
            ["job_id", "status"],
            registry=registry,
        )

        self.duration = Histogram(
            "recurring_job_duration_seconds",
            "Time spent executing recurring jobs",
            ["job_id"],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
            registry=registry,
        )


class ServiceMetrics(NamedTuple):
    http: HttpMetrics
    erezept: ErezeptMetrics
    websocket: WebSocketMetrics
    jobs: JobMetrics


@lru_cache()
def setup_metrics() -> ServiceMetrics:
    """Setup and return metric instances.

    Returns:
        All metric groups, registered on the default registry
    """
    return ServiceMetrics(
        http=HttpMetrics(),
        erezept=ErezeptMetrics(),
        websocket=WebSocketMetrics(),
        jobs=JobMetrics(),
    )


def get_metrics_handler() -> Callable[[], bytes]:
    """Get metrics handler for HTTP endpoint.

    Returns:
        Function that generates Prometheus metrics output
    """

    def metrics_handler() -> bytes:
        return generate_latest(REGISTRY)

    return metrics_handler


__all__ = [
    "CONTENT_TYPE_LATEST",
    "HttpMetrics",
    "ErezeptMetrics",
    "WebSocketMetrics",
    "JobMetrics",
    "ServiceMetrics",
    "setup_metrics",
    "get_metrics_handler",
]
