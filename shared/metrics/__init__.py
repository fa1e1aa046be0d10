"""Metrics module using Prometheus."""

from .prometheus_metrics import (
    CONTENT_TYPE_LATEST,
    ErezeptMetrics,
    HttpMetrics,
    JobMetrics,
    ServiceMetrics,
    WebSocketMetrics,
    get_metrics_handler,
    setup_metrics,
)

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
