"""
OTLP export of the self disclosure log record.

The exporter is created lazily on the first export and reused afterwards.
gRPC takes precedence when both protocols are enabled.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

import structlog
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter as GrpcLogExporter
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter as HttpLogExporter
from opentelemetry.sdk._logs.export import LogExporter, LogExportResult

from shared.tracing import trace_function
from testfachdienst.src.config import Settings
from testfachdienst.src.services.self_disclosure_service import SelfDisclosureService

logger = structlog.get_logger(__name__)

HTTP_SCHEME = "http://"
HTTPS_SCHEME = "https://"


@dataclass(frozen=True)
class SelfDisclosureExportConfig:
    """OTLP export switches, endpoints and the export interval."""

    grpc_export_enabled: bool = False
    grpc_host: str = ""
    http_export_enabled: bool = False
    http_host: str = ""
    interval_seconds: int = 60

    @classmethod
    def from_settings(cls, settings: Settings) -> "SelfDisclosureExportConfig":
        return cls(
            grpc_export_enabled=settings.otlp_export_logs_grpc_enabled,
            grpc_host=settings.otlp_export_logs_grpc_host,
            http_export_enabled=settings.otlp_export_logs_http_enabled,
            http_host=settings.otlp_export_logs_http_host,
            interval_seconds=settings.otlp_export_logs_interval_seconds,
        )


class OtlpLogExporterFactory(Protocol):
    """Creates OTLP log exporters for the supported transports."""

    def create_http_exporter(self, endpoint: str) -> LogExporter:
        ...

    def create_grpc_exporter(self, endpoint: str) -> LogExporter:
        ...


class DefaultOtlpLogExporterFactory:
    """Builds exporters with the OpenTelemetry OTLP exporter packages."""

    def create_http_exporter(self, endpoint: str) -> LogExporter:
        return HttpLogExporter(endpoint=endpoint)

    def create_grpc_exporter(self, endpoint: str) -> LogExporter:
        return GrpcLogExporter(endpoint=endpoint, insecure=endpoint.startswith(HTTP_SCHEME))


def normalize_endpoint(endpoint: Optional[str], exporter_type: str) -> str:
    """
    Ensure the endpoint carries an http/https scheme, defaulting to http.

    Raises:
        ValueError: If the endpoint is missing or blank
    """
    if endpoint is None or not endpoint.strip():
        raise ValueError(f"OTLP {exporter_type} host must not be empty")
    if endpoint.startswith(HTTP_SCHEME) or endpoint.startswith(HTTPS_SCHEME):
        return endpoint

    normalized = HTTP_SCHEME + endpoint
    logger.info(
        "otlp_endpoint_scheme_defaulted",
        exporter_type=exporter_type,
        endpoint=endpoint,
        normalized_endpoint=normalized,
    )
    return normalized


class SelfDisclosureExportService:
    """Exports the self disclosure record via OTLP."""

    def __init__(
        self,
        self_disclosure_service: SelfDisclosureService,
        config: SelfDisclosureExportConfig,
        exporter_factory: Optional[OtlpLogExporterFactory] = None,
    ):
        self.self_disclosure_service = self_disclosure_service
        self.config = config
        self.exporter_factory = exporter_factory or DefaultOtlpLogExporterFactory()
        self.log_exporter: Optional[LogExporter] = None

    @property
    def export_enabled(self) -> bool:
        return self.config.grpc_export_enabled or self.config.http_export_enabled

    def _setup_log_exporter(self) -> LogExporter:
        if self.config.grpc_export_enabled and self.config.http_export_enabled:
            logger.info("otlp_both_protocols_enabled", selected="grpc")

        if self.config.grpc_export_enabled:
            endpoint = normalize_endpoint(self.config.grpc_host, "gRPC")
            logger.info("otlp_log_exporter_created", protocol="grpc", endpoint=endpoint)
            return self.exporter_factory.create_grpc_exporter(endpoint)

        if self.config.http_export_enabled:
            endpoint = normalize_endpoint(self.config.http_host, "HTTP")
            logger.info("otlp_log_exporter_created", protocol="http", endpoint=endpoint)
            return self.exporter_factory.create_http_exporter(endpoint)

        raise RuntimeError("No OTLP exporter enabled")

    @trace_function("self_disclosure.export")
    def export_self_disclosure(self) -> Optional[LogExportResult]:
        """
        Build and export one self disclosure record.

        Skips without side effects when both protocols are disabled.

        Returns:
            Export result, or None when export is disabled
        """
        if not self.export_enabled:
            logger.debug("otlp_export_disabled")
            return None

        if self.log_exporter is None:
            self.log_exporter = self._setup_log_exporter()

        record = self.self_disclosure_service.generate_self_disclosure_record()
        result = self.log_exporter.export([record])

        if result == LogExportResult.FAILURE:
            logger.warning("self_disclosure_export_failed")
        else:
            logger.info("self_disclosure_exported")
        return result

    @property
    def export_interval_seconds(self) -> int:
        return self.config.interval_seconds

    def shutdown(self) -> None:
        if self.log_exporter is not None:
            self.log_exporter.shutdown()
            self.log_exporter = None
