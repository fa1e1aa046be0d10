"""Pydantic models for the management probes."""

from enum import Enum
from typing import Dict, Literal

from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


class _ProbeModel(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    service: str
    version: str


class LivenessReport(_ProbeModel):
    """Body of the liveness probe; never inspects dependencies."""

    status: HealthStatus = HealthStatus.HEALTHY
    environment: str


class ReadinessReport(_ProbeModel):
    status: Literal["ready", "not_ready"]
    checks: Dict[str, HealthStatus]

    @classmethod
    def from_checks(cls, service: str, version: str, checks: Dict[str, HealthStatus]) -> "ReadinessReport":
        ready = all(check == HealthStatus.HEALTHY for check in checks.values())
        return cls(service=service, version=version, checks=checks, status="ready" if ready else "not_ready")

    @property
    def is_ready(self) -> bool:
        return self.status == "ready"


class ServiceInfo(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    service_name: str
    version: str
    environment: str
    status: HealthStatus
    uptime_seconds: float = Field(..., ge=0.0)
    dependencies: Dict[str, HealthStatus] = Field(default_factory=dict)
