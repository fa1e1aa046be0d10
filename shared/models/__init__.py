"""Shared Pydantic models."""

from .common import HealthStatus, LivenessReport, ReadinessReport, ServiceInfo

__all__ = ["HealthStatus", "LivenessReport", "ReadinessReport", "ServiceInfo"]
