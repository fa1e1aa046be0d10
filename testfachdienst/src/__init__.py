"""Testfachdienst: prescription CRUD over REST and STOMP/WebSocket.

This package provides the FastAPI service, its STOMP messaging endpoint,
the recurring OTLP self disclosure export and the management surface.
"""

__version__ = "0.1.3"
