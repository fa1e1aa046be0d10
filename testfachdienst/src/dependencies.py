"""
FastAPI dependency injection for services created at startup.

The lifespan handler in ``main`` stores shared resources on ``app.state``;
these dependencies hand them to the routers and make them replaceable in
tests via ``app.dependency_overrides``.
"""

import structlog
from fastapi import Request

from testfachdienst.src.config import Settings
from testfachdienst.src.jobs.scheduler import RecurringJobScheduler
from testfachdienst.src.services.erezept_service import ErezeptService
from testfachdienst.src.services.hello_service import HelloZetaService
from testfachdienst.src.ws.destinations import StompDestinations

logger = structlog.get_logger(__name__)


def _state_attribute(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        logger.error("app_state_not_initialized", attribute=name)
        raise RuntimeError(f"Application state '{name}' not initialized. Is the lifespan running?")
    return value


def get_app_settings(request: Request) -> Settings:
    return _state_attribute(request, "settings")


def get_erezept_service(request: Request) -> ErezeptService:
    return _state_attribute(request, "erezept_service")


def get_hello_service(request: Request) -> HelloZetaService:
    return _state_attribute(request, "hello_service")


def get_scheduler(request: Request) -> RecurringJobScheduler:
    return _state_attribute(request, "scheduler")


def get_destinations(request: Request) -> StompDestinations:
    return _state_attribute(request, "destinations")
