"""
Management endpoints: health, readiness, metrics and service info.

Served on the management port by a small FastAPI app that shares the main
application's state, or mounted on the main app when both ports are equal.
"""

import time

import structlog
from fastapi import APIRouter, FastAPI, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from shared.metrics import CONTENT_TYPE_LATEST, get_metrics_handler
from shared.models import HealthStatus, LivenessReport, ReadinessReport, ServiceInfo
from testfachdienst.src.database import ping

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Management"])

_metrics_handler = get_metrics_handler()


def _uptime(request: Request) -> float:
    started_at = getattr(request.app.state, "started_at", None)
    return time.monotonic() - started_at if started_at is not None else 0.0


async def _database_status(engine) -> HealthStatus:
    if engine is not None and await ping(engine):
        return HealthStatus.HEALTHY
    return HealthStatus.UNHEALTHY


@router.get("/health", response_model=LivenessReport)
async def health_check(request: Request) -> LivenessReport:
    """
    Health check endpoint.

    Returns basic health status without checking dependencies.
    Use for container liveness probes.
    """
    settings = request.app.state.settings
    return LivenessReport(
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get("/ready", response_class=JSONResponse)
async def readiness_check(request: Request) -> JSONResponse:
    """
    Readiness check endpoint.

    Verifies database connectivity. Responds 503 until the database answers.
    """
    settings = request.app.state.settings
    engine = getattr(request.app.state, "engine", None)

    database = await _database_status(engine)
    report = ReadinessReport.from_checks(settings.app_name, settings.app_version, {"database": database})
    if not report.is_ready:
        logger.warning("readiness_check_failed", checks=report.checks)

    return JSONResponse(
        status_code=status.HTTP_200_OK if report.is_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=report.model_dump(mode="json"),
    )


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=_metrics_handler(), media_type=CONTENT_TYPE_LATEST)


@router.get("/info", response_model=ServiceInfo)
async def info(request: Request) -> ServiceInfo:
    settings = request.app.state.settings
    engine = getattr(request.app.state, "engine", None)
    database = await _database_status(engine)
    return ServiceInfo(
        service_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        status=HealthStatus.HEALTHY if database == HealthStatus.HEALTHY else HealthStatus.DEGRADED,
        uptime_seconds=_uptime(request),
        dependencies={"database": database},
    )


def create_management_app(main_app: FastAPI) -> FastAPI:
    """Build the management app; it reads the main app's state."""
    management_app = FastAPI(
        title=f"{main_app.title} management",
        version=main_app.version,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    management_app.state = main_app.state
    management_app.include_router(router)
    return management_app
