"""Response models for GET /health."""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

HealthStatus = Literal["healthy", "degraded", "unhealthy"]


class ComponentHealth(BaseModel):
    """Probe result for one dependency (registry, commerce, store, limiter)."""

    name: str
    status: HealthStatus
    latency_ms: float | None = None
    message: str | None = None


class HealthResponse(BaseModel):
    status: HealthStatus
    version: str
    actions_registered: int = 0
    components: list[ComponentHealth] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def aggregate(
        cls, components: list[ComponentHealth], *, version: str, actions_registered: int
    ) -> "HealthResponse":
        """Worst component status wins."""
        statuses = {component.status for component in components}
        status: HealthStatus = "healthy"
        if "unhealthy" in statuses:
            status = "unhealthy"
        elif "degraded" in statuses:
            status = "degraded"
        return cls(
            status=status,
            version=version,
            actions_registered=actions_registered,
            components=components,
        )
