"""Small response payloads: greeting, WebSocket errors, job info."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class HelloZetaResource(BaseModel):
    """Greeting payload of the public /hellozeta endpoint."""

    message: str = Field(..., examples=["Hello ZETA!"])


class WebSocketErrorResponse(BaseModel):
    """
    Error sent when a STOMP message handler fails.

    Clients receive it on the same destination where they expect the
    successful reply.
    """

    status: int = Field(..., description="HTTP status code", examples=[404])
    message: str = Field(..., description="Human-readable error message")
    timestamp: datetime = Field(..., description="When the error occurred")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")


class JobInfoResponse(BaseModel):
    status: str


class RecurringJobResponse(BaseModel):
    """State of a registered recurring job."""

    id: str
    interval_seconds: float
    last_run_at: Optional[datetime] = None
    last_status: Optional[str] = None
    runs: int = 0
    failures: int = 0
