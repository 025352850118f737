"""Bulk upload response models."""

from pydantic import BaseModel, Field

from chandler.bulk.models import BulkItemError, CSVParseSummary


class BulkOrderAccepted(BaseModel):
    """First event of a bulk order stream."""

    cart_id: str
    mode: str
    summary: CSVParseSummary
    rejected_rows: list[int] = Field(default_factory=list)


class BulkOrderCompleted(BaseModel):
    """Final event of a bulk order stream."""

    cart_id: str
    items_processed: int
    items_added: int
    items_failed: int
    total_quantity: int
    total_value: float
    processing_time_ms: float
    errors: list[BulkItemError] = Field(default_factory=list)
    alternatives: dict[str, list[str]] = Field(default_factory=dict)
    """Suggested SKUs per unavailable SKU."""
