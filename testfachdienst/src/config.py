"""
Testfachdienst configuration using Pydantic Settings.

Provides centralized configuration for:
- HTTP serving (ports, TLS, servlet-style context path)
- Database connection (SQLAlchemy async URL)
- STOMP over WebSocket
- OTLP self disclosure export and its recurring job
- Container memory policy
- Logging, metrics and tracing

All settings support environment variable overrides and .env file loading.
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def normalize_context_path(context_path: Optional[str]) -> str:
    """
    Normalize a context path so it can prefix routes and destinations.

    Blank values and "/" map to "". Anything else gets a leading "/" and
    loses a trailing one.

    Example:
        >>> normalize_context_path("achelos_testfachdienst/")
        '/achelos_testfachdienst'
    """
    if context_path is None:
        return ""
    context_path = context_path.strip()
    if not context_path or context_path == "/":
        return ""
    if not context_path.startswith("/"):
        context_path = "/" + context_path
    return context_path[:-1] if context_path.endswith("/") else context_path


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables with the
    prefix "TESTFACHDIENST_" (e.g., TESTFACHDIENST_DATABASE_URL).
    """

    # =========================================================================
    # Service Settings
    # =========================================================================

    app_name: str = Field(default="testfachdienst", description="Application name")
    app_version: str = Field(default="0.1.3", description="Service version")
    environment: str = Field(
        default="development",
        description="Environment: development|staging|production"
    )
    debug: bool = Field(default=False, description="Debug mode")

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, description="Primary service port", gt=0, lt=65536)
    management_port: int = Field(
        default=8081,
        description="Management port (health, metrics). Equal to port = served by the main app",
        gt=0,
        lt=65536
    )
    context_path: str = Field(default="", description="Prefix for all service routes")

    # =========================================================================
    # TLS Settings
    # =========================================================================

    ssl_certfile: Optional[str] = Field(default=None, description="PEM certificate chain")
    ssl_keyfile: Optional[str] = Field(default=None, description="PEM private key")
    ssl_keyfile_password: Optional[str] = Field(default=None, description="Private key password")
    ssl_ca_certs: Optional[str] = Field(default=None, description="CA bundle for client certificates")

    # =========================================================================
    # Database Settings
    # =========================================================================

    database_url: str = Field(
        default="sqlite+aiosqlite:///:memory:",
        description="SQLAlchemy async database URL"
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements to logs")
    database_pool_size: int = Field(default=10, description="Connection pool size", gt=0, le=100)

    # =========================================================================
    # Security Settings
    # =========================================================================

    security_headers_enabled: bool = Field(default=True, description="Add security headers")
    security_hsts_max_age: int = Field(default=31536000, description="HSTS max age (seconds)")
    cors_origins: List[str] = Field(default=["*"], description="Allowed CORS origins")

    # =========================================================================
    # WebSocket Settings
    # =========================================================================

    websocket_path: str = Field(default="/ws", description="STOMP endpoint path")
    websocket_max_frame_bytes: int = Field(
        default=64 * 1024,
        description="Maximum size of an inbound STOMP frame",
        gt=0
    )

    # =========================================================================
    # OTLP Self Disclosure Export
    # =========================================================================

    otlp_export_logs_grpc_enabled: bool = Field(default=False, description="Export via OTLP/gRPC")
    otlp_export_logs_grpc_host: str = Field(default="localhost:4317", description="OTLP/gRPC endpoint")
    otlp_export_logs_http_enabled: bool = Field(default=False, description="Export via OTLP/HTTP")
    otlp_export_logs_http_host: str = Field(
        default="localhost:4318/v1/logs",
        description="OTLP/HTTP logs endpoint"
    )
    otlp_export_logs_interval_seconds: int = Field(
        default=60,
        description="Self disclosure export interval",
        gt=0
    )
    self_disclosure_resource_attributes: Dict[str, str] = Field(
        default_factory=lambda: {"service_name": "testfachdienst"},
        description="Attributes attached to every self disclosure record"
    )

    # =========================================================================
    # Memory Policy
    # =========================================================================

    container_support: bool = Field(default=True, description="Size memory from the cgroup limit")
    max_ram_percentage: float = Field(
        default=75.0,
        description="Share of visible RAM the process may use",
        gt=0.0,
        le=100.0
    )
    exit_on_out_of_memory: bool = Field(default=True, description="Terminate on MemoryError")
    memory_policy_enabled: bool = Field(
        default=False,
        description="Apply the memory limit at startup (enabled in the container image)"
    )

    # =========================================================================
    # Observability
    # =========================================================================

    log_level: str = Field(default="INFO", description="DEBUG|INFO|WARNING|ERROR|CRITICAL")
    log_format: str = Field(default="json", description="json|text")

    tracing_enabled: bool = Field(default=False, description="Enable OpenTelemetry tracing")
    tracing_otlp_endpoint: str = Field(default="http://localhost:4317", description="OTLP trace endpoint")
    tracing_otlp_protocol: str = Field(default="grpc", description="grpc|http")
    tracing_sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(
        env_prefix="TESTFACHDIENST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return v.upper()

    @field_validator("tracing_otlp_protocol")
    @classmethod
    def validate_protocol(cls, v: str) -> str:
        if v not in ("grpc", "http"):
            raise ValueError("tracing_otlp_protocol must be 'grpc' or 'http'")
        return v

    @property
    def normalized_context_path(self) -> str:
        return normalize_context_path(self.context_path)

    @property
    def tls_enabled(self) -> bool:
        return bool(self.ssl_certfile and self.ssl_keyfile)

    @property
    def separate_management_port(self) -> bool:
        return self.management_port != self.port


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded from:
    1. Environment variables with TESTFACHDIENST_ prefix
    2. .env file in the current directory
    3. Default values
    """
    return Settings()


def clear_settings_cache():
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
