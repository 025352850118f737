"""Logging and tracing settings."""

from typing import Literal

from pydantic import BaseModel, Field

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LoggingConfig(BaseModel):
    level: LogLevel = "INFO"
    format: Literal["json", "console"] = Field(
        default="json", description="json in production, console for local runs"
    )
    redact_pii: bool = Field(default=True, description="Mask customer and payment data")


class TracingConfig(BaseModel):
    enabled: bool = Field(default=False, description="Instrument FastAPI with OpenTelemetry")


class ObservabilityConfig(BaseModel):
    """Grouped under ``[observability]`` in TOML. Prometheus metrics are always served."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    tracing: TracingConfig = Field(default_factory=TracingConfig)
