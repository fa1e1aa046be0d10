"""
FastAPI application entry point for the Testfachdienst.

This module provides the application factory with:
- Prescription REST API, greeting and job endpoints
- STOMP over WebSocket endpoint for prescriptions
- Recurring OTLP self disclosure export
- Request logging, Prometheus metrics and security headers
- OpenTelemetry distributed tracing
- Database engine management
- Graceful startup and shutdown
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, WebSocket, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.metrics import setup_metrics
from shared.runtime import apply_memory_policy, exit_on_out_of_memory
from shared.tracing import configure_tracing
from testfachdienst.src import management
from testfachdienst.src.config import Settings, get_settings
from testfachdienst.src.database import build_engine, build_session_factory, init_schema
from testfachdienst.src.jobs.scheduler import RecurringJobScheduler
from testfachdienst.src.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from testfachdienst.src.repositories.erezept_repo import ErezeptRepository
from testfachdienst.src.routers import docs, erezept, hello, jobs
from testfachdienst.src.services import (
    ErezeptService,
    HelloZetaService,
    SelfDisclosureExportConfig,
    SelfDisclosureExportService,
    SelfDisclosureService,
)
from testfachdienst.src.ws import ErezeptMessageHandlers, SimpleBroker, StompDestinations, StompEndpoint

logger = structlog.get_logger(__name__)

SELF_DISCLOSURE_JOB_ID = "self-disclosure-export"


# ============================================================================
# Lifespan Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown events.

    Handles:
    - Memory policy and OpenTelemetry tracing setup
    - Database engine and schema initialization
    - Service, broker and STOMP handler initialization
    - Registration of the self disclosure export job
    - Graceful shutdown and resource cleanup
    """
    settings: Settings = app.state.settings
    metrics = setup_metrics()
    tracer_provider = None

    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        context_path=settings.normalized_context_path,
    )

    # ========================================================================
    # Startup: Initialize Resources
    # ========================================================================

    try:
        app.state.started_at = time.monotonic()

        if settings.memory_policy_enabled:
            apply_memory_policy(settings.max_ram_percentage, settings.container_support)

        if settings.tracing_enabled:
            logger.info(
                "initializing_tracing",
                endpoint=settings.tracing_otlp_endpoint,
                protocol=settings.tracing_otlp_protocol,
            )
            tracer_provider = configure_tracing(
                service_name=settings.app_name,
                service_version=settings.app_version,
                otlp_endpoint=settings.tracing_otlp_endpoint,
                protocol=settings.tracing_otlp_protocol,
                sampling_rate=settings.tracing_sample_rate,
            )

        engine = build_engine(settings)
        app.state.engine = engine
        await init_schema(engine)

        logger.info("initializing_services")
        erezept_service = ErezeptService(ErezeptRepository(build_session_factory(engine)))
        app.state.erezept_service = erezept_service
        app.state.hello_service = HelloZetaService()

        broker = SimpleBroker(metrics.websocket)
        destinations: StompDestinations = app.state.destinations
        app.state.broker = broker
        app.state.stomp_endpoint = StompEndpoint(
            broker=broker,
            handlers=ErezeptMessageHandlers(
                erezept_service,
                broker,
                destinations,
                metrics.erezept,
                exit_on_oom=settings.exit_on_out_of_memory,
            ),
            destinations=destinations,
            server_name=f"{settings.app_name}/{settings.app_version}",
            max_frame_bytes=settings.websocket_max_frame_bytes,
            metrics=metrics.websocket,
        )

        export_service = SelfDisclosureExportService(
            SelfDisclosureService(
                settings.self_disclosure_resource_attributes,
                service_name=settings.app_name,
                service_version=settings.app_version,
            ),
            SelfDisclosureExportConfig.from_settings(settings),
        )
        app.state.self_disclosure_export_service = export_service

        scheduler = RecurringJobScheduler(metrics.jobs, exit_on_oom=settings.exit_on_out_of_memory)
        app.state.scheduler = scheduler
        scheduler.create_recurrently(
            SELF_DISCLOSURE_JOB_ID,
            export_service.export_interval_seconds,
            export_service.export_self_disclosure,
        )

        logger.info(
            "application_started",
            app_name=settings.app_name,
            version=settings.app_version,
            environment=settings.environment,
        )

        yield

    except Exception as e:
        logger.error("application_startup_failed", error=str(e), exc_info=True)
        raise

    # ========================================================================
    # Shutdown: Cleanup Resources
    # ========================================================================

    finally:
        logger.info("application_shutting_down")

        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            await scheduler.shutdown()

        export_service = getattr(app.state, "self_disclosure_export_service", None)
        if export_service is not None:
            export_service.shutdown()

        engine = getattr(app.state, "engine", None)
        if engine is not None:
            await engine.dispose()
            logger.info("database_engine_disposed")

        if tracer_provider is not None:
            tracer_provider.shutdown()

        logger.info("application_shutdown_complete")


# ============================================================================
# Exception Handlers
# ============================================================================

def jsonable_errors(exc: RequestValidationError):
    # ctx may carry the original exception object
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    errors = jsonable_errors(exc)
    logger.warning("validation_error", path=request.url.path, errors=errors)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    logger.warning(
        "http_exception",
        path=request.url.path,
        status_code=exc.status_code,
        detail=exc.detail,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions; a MemoryError ends the process."""
    if request.app.state.settings.exit_on_out_of_memory:
        exit_on_out_of_memory(exc)

    logger.error("unexpected_exception", path=request.url.path, error=str(exc), exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


async def stomp_websocket(websocket: WebSocket) -> None:
    endpoint: StompEndpoint = websocket.app.state.stomp_endpoint
    await endpoint(websocket)


# ============================================================================
# FastAPI Application
# ============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    All routes live below the normalized context path. Management endpoints
    are mounted here only when the management port equals the main port.

    Args:
        settings: Settings to use; defaults to the cached environment settings
    """
    settings = settings or get_settings()
    context_path = settings.normalized_context_path
    metrics = setup_metrics()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "ZETA test service. Provides E-Rezept CRUD over REST and STOMP, "
            "a greeting endpoint and periodic OTLP self disclosure."
        ),
        docs_url=f"{context_path}/docs",
        redoc_url=f"{context_path}/redoc",
        openapi_url=f"{context_path}/openapi.json",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.destinations = StompDestinations(context_path)

    # ========================================================================
    # Middleware Configuration
    # ========================================================================

    logger.debug("configuring_cors", origins=settings.cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware, metrics=metrics.http)
    if settings.security_headers_enabled:
        app.add_middleware(
            SecurityHeadersMiddleware,
            hsts_max_age=settings.security_hsts_max_age,
            hsts_enabled=settings.tls_enabled,
        )

    if settings.tracing_enabled:
        FastAPIInstrumentor.instrument_app(app)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # ========================================================================
    # Routers
    # ========================================================================

    app.include_router(erezept.router, prefix=context_path)
    app.include_router(hello.router, prefix=context_path)
    app.include_router(jobs.router, prefix=context_path)
    app.include_router(docs.router, prefix=context_path)
    app.add_api_websocket_route(f"{context_path}{settings.websocket_path}", stomp_websocket)

    if not settings.separate_management_port:
        app.include_router(management.router, prefix=context_path)

    return app


app = create_app()
