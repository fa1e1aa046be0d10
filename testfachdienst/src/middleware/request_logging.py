"""
Request logging and metrics middleware.

Assigns a correlation id to every request, binds it to the structlog
context, records Prometheus request metrics and logs start and completion.
"""

import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from shared.logging import bind_context, unbind_context
from shared.metrics import HttpMetrics

logger = structlog.get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
QUIET_PATHS = ("/health", "/ready", "/metrics")


def _endpoint_label(request: Request) -> str:
    # route templates keep the label cardinality bounded
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or "unmatched"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging and metrics."""

    def __init__(self, app, metrics: HttpMetrics):
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"
        quiet = path.endswith(QUIET_PATHS)

        bind_context(correlation_id=correlation_id)
        self.metrics.requests_in_progress.labels(method=method).inc()
        start_time = time.perf_counter()

        if not quiet:
            logger.info("request_started", method=method, path=path, client_ip=client_ip)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(
                "request_failed",
                method=method,
                path=path,
                error=str(e),
                duration=f"{duration:.3f}s",
                exc_info=True,
            )
            raise
        finally:
            self.metrics.requests_in_progress.labels(method=method).dec()
            unbind_context("correlation_id")

        duration = time.perf_counter() - start_time
        endpoint = _endpoint_label(request)
        self.metrics.requests_total.labels(method=method, endpoint=endpoint, status=response.status_code).inc()
        self.metrics.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

        if not quiet:
            logger.info(
                "request_completed",
                method=method,
                path=path,
                status_code=response.status_code,
                duration=f"{duration:.3f}s",
                correlation_id=correlation_id,
            )

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
