"""Data models for the Testfachdienst service.

This package contains the SQLAlchemy entity and the Pydantic models for
request/response validation.
"""

from testfachdienst.src.models.erezept import (
    Base,
    DeletedResponse,
    Erezept,
    ErezeptRequest,
    ErezeptResponse,
    ErezeptStatus,
)
from testfachdienst.src.models.messages import (
    HelloZetaResource,
    JobInfoResponse,
    RecurringJobResponse,
    WebSocketErrorResponse,
)

__all__ = [
    "Base",
    "DeletedResponse",
    "Erezept",
    "ErezeptRequest",
    "ErezeptResponse",
    "ErezeptStatus",
    "HelloZetaResource",
    "JobInfoResponse",
    "RecurringJobResponse",
    "WebSocketErrorResponse",
]
