"""Structured logging module using structlog."""

from .structured_logger import bind_context, configure_logging, get_logger, unbind_context

__all__ = ["configure_logging", "get_logger", "bind_context", "unbind_context"]
