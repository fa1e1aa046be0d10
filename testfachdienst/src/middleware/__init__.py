"""FastAPI middleware components.

This package contains custom middleware for request/response logging,
metrics and security headers.
"""

from testfachdienst.src.middleware.request_logging import RequestLoggingMiddleware
from testfachdienst.src.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
]
