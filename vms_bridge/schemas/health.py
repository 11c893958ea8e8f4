"""Pydantic schemas for health check API endpoints.

Components reported: ``credential_store`` and ``vms_client``.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


HealthStatus = Literal["healthy", "degraded", "unhealthy"]


class ComponentHealth(BaseModel):
    status: HealthStatus = Field(..., description="Component health status")
    latency_ms: int | None = Field(None, description="Check latency in milliseconds")
    error: str | None = Field(None, description="Why the component is not healthy")
    details: dict[str, Any] | None = Field(
        None,
        description="Store backend, or whether the TLS-bypass transport exists",
    )


class HealthResponse(BaseModel):
    """Overall status plus one entry per component."""

    status: HealthStatus = Field(..., description="Worst component status")
    service: str = Field(default="vms-bridge", description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: datetime = Field(..., description="Time of the check (UTC)")
    components: dict[str, ComponentHealth] = Field(
        ..., description="Status keyed by component name"
    )
    uptime_seconds: int | None = Field(None, description="Seconds since startup")


class LivenessResponse(BaseModel):
    status: Literal["ok"] = Field(default="ok", description="Liveness status")
