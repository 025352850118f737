"""Bulk order ingestion configuration models."""

from pydantic import BaseModel, Field


class RetryConfig(BaseModel):
    """Exponential backoff policy for transient lookup failures."""

    max_attempts: int = Field(default=3, ge=1)
    initial_delay_seconds: float = Field(default=1.0, ge=0)
    max_delay_seconds: float = Field(default=10.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)


class BulkConfig(BaseModel):
    """Bulk CSV parsing and processing settings."""

    max_file_size: int = Field(default=5 * 1024 * 1024, gt=0, description="Upload ceiling in bytes")
    max_rows: int = Field(default=1000, gt=0, description="Rows parsed per upload")
    max_control_char_ratio: float = Field(default=0.01, ge=0.0, le=1.0)
    batch_size: int = Field(default=10, gt=0, description="Rows per processing batch")
    max_concurrency: int = Field(default=10, gt=0, description="Concurrent lookups per batch")
    cache_ttl_seconds: float = Field(default=300.0, gt=0, description="Product cache TTL")
    cache_max_size: int = Field(default=1000, gt=0, description="Product cache capacity")
    retry: RetryConfig = Field(default_factory=RetryConfig)
