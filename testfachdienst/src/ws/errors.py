"""
Error mapping for STOMP message handlers.

Every handler failure becomes a WebSocketErrorResponse that is sent to the
caller on the same user queue as a successful reply.
"""

from datetime import datetime, timezone
from typing import Dict

import structlog
from pydantic import ValidationError
from starlette.exceptions import HTTPException

from testfachdienst.src.models.messages import WebSocketErrorResponse

logger = structlog.get_logger(__name__)

VALIDATION_FAILED = "Validation failed"
INVALID_MESSAGE_FORMAT = "Invalid message format or missing required fields"
UNEXPECTED_ERROR = "An unexpected error occurred"

_VALUE_ERROR_PREFIX = "Value error, "


class MessageConversionError(ValueError):
    """The message body could not be read as the expected payload."""


def field_errors(exc: ValidationError) -> Dict[str, str]:
    """Map each failing field to its first error message."""
    errors: Dict[str, str] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "payload"
        message = error.get("msg") or "Invalid value"
        if message.startswith(_VALUE_ERROR_PREFIX):
            message = message[len(_VALUE_ERROR_PREFIX):]
        errors.setdefault(field, message)
    return errors


def map_exception(exc: Exception) -> WebSocketErrorResponse:
    """Translate a handler exception into the error payload sent to the caller."""
    now = datetime.now(timezone.utc)

    if isinstance(exc, HTTPException):
        logger.warning("websocket_error", status_code=exc.status_code, reason=exc.detail)
        return WebSocketErrorResponse(status=exc.status_code, message=str(exc.detail), timestamp=now)

    if isinstance(exc, ValidationError):
        logger.warning("websocket_validation_error", error=str(exc))
        return WebSocketErrorResponse(
            status=400,
            message=VALIDATION_FAILED,
            timestamp=now,
            details={"errors": field_errors(exc)},
        )

    if isinstance(exc, MessageConversionError):
        logger.warning("websocket_message_conversion_error", error=str(exc))
        return WebSocketErrorResponse(
            status=400,
            message=INVALID_MESSAGE_FORMAT,
            timestamp=now,
            details={"error": str(exc)},
        )

    logger.error("websocket_unexpected_error", error=str(exc), exc_info=exc)
    return WebSocketErrorResponse(status=500, message=UNEXPECTED_ERROR, timestamp=now)
