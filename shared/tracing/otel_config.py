"""OpenTelemetry tracer provider wired to an OTLP collector."""

import contextlib
import functools
import inspect
from typing import Any, Callable, Iterator, Optional, TypeVar

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
    OTLPSpanExporter as GrpcSpanExporter,
)
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
    OTLPSpanExporter as HttpSpanExporter,
)
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_NAMESPACE, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Span, Status, StatusCode

F = TypeVar("F", bound=Callable[..., Any])

HTTP_TRACES_PATH = "/v1/traces"


def _span_exporter(protocol: str, endpoint: str) -> SpanExporter:
    if protocol == "grpc":
        return GrpcSpanExporter(endpoint=endpoint, insecure=endpoint.startswith("http://"))
    if protocol == "http":
        # the HTTP exporter posts to the endpoint verbatim
        if not endpoint.rstrip("/").endswith(HTTP_TRACES_PATH):
            endpoint = endpoint.rstrip("/") + HTTP_TRACES_PATH
        return HttpSpanExporter(endpoint=endpoint)
    raise ValueError(f"Unsupported OTLP protocol: {protocol}")


def configure_tracing(
    service_name: str,
    service_version: str = "0.0.0",
    otlp_endpoint: str = "http://localhost:4317",
    protocol: str = "grpc",
    sampling_rate: float = 1.0,
) -> TracerProvider:
    """Install a global tracer provider exporting batched spans over OTLP.

    Sampling follows the parent span when there is one and otherwise keeps
    ``sampling_rate`` of new traces. The caller owns the returned provider
    and shuts it down on exit.
    """
    exporter = _span_exporter(protocol, otlp_endpoint)
    provider = TracerProvider(
        resource=Resource.create(
            {
                SERVICE_NAME: service_name,
                SERVICE_NAMESPACE: "zeta",
                SERVICE_VERSION: service_version,
            }
        ),
        sampler=ParentBased(TraceIdRatioBased(sampling_rate)),
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    return provider


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


@contextlib.contextmanager
def _traced(func: Callable[..., Any], span_name: str) -> Iterator[Span]:
    tracer = get_tracer(func.__module__)
    with tracer.start_as_current_span(
        span_name,
        attributes={"code.function": func.__qualname__, "code.namespace": func.__module__},
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, f"{type(exc).__name__}: {exc}"))
            raise


def trace_function(span_name: Optional[str] = None) -> Callable[[F], F]:
    """Run the decorated callable, sync or async, inside its own span."""

    def decorator(func: F) -> F:
        name = span_name or func.__qualname__

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def run_async(*args: Any, **kwargs: Any) -> Any:
                with _traced(func, name):
                    return await func(*args, **kwargs)

            return run_async  # type: ignore

        @functools.wraps(func)
        def run(*args: Any, **kwargs: Any) -> Any:
            with _traced(func, name):
                return func(*args, **kwargs)

        return run  # type: ignore

    return decorator
