"""structlog setup shared by the service and the build tooling.

Records emitted through structlog and records emitted by plain stdlib
loggers (uvicorn, SQLAlchemy) end up in the same handler and are rendered
by the same structlog renderer, so one process writes one log format.
"""

import logging
import sys
from typing import Any, Dict, List, Optional

import structlog
from opentelemetry import trace
from structlog.types import EventDict, Processor

# uvicorn's access log duplicates the request_completed events
_QUIET_LOGGERS = ("uvicorn.access",)


class StaticFields:
    """Processor stamping fixed deployment fields onto every event."""

    def __init__(self, fields: Dict[str, str]):
        self.fields = {key: value for key, value in fields.items() if value}

    def __call__(self, logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        for key, value in self.fields.items():
            event_dict.setdefault(key, value)
        return event_dict


def inject_span_ids(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        event_dict["trace_id"] = trace.format_trace_id(span_context.trace_id)
        event_dict["span_id"] = trace.format_span_id(span_context.span_id)
    return event_dict


def _shared_processors(static: StaticFields) -> List[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        static,
        inject_span_ids,
    ]


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    service_name: Optional[str] = None,
    environment: Optional[str] = None,
) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    ``json_logs`` picks the JSON renderer used in containers; otherwise the
    colourless console renderer is used. ``service_name`` and
    ``environment`` are attached to every record.
    """
    static = StaticFields({"service": service_name or "", "environment": environment or ""})
    shared = _shared_processors(static)
    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=shared
        + [
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level.upper())

    # uvicorn installs its own handlers unless told otherwise
    for name in ("uvicorn", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach key/value pairs to every event logged from the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)
