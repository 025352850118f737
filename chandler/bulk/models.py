"""Bulk order ingestion models."""

import time
from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field

from chandler.commerce.models import Product
from chandler.conversation.commands import Command

Priority = Literal["high", "normal", "low"]
PRIORITY_ORDER: tuple[Priority, ...] = ("high", "normal", "low")

ThreatType = Literal[
    "sql_injection",
    "script_injection",
    "path_traversal",
    "command_injection",
    "field_length",
]

BulkPhase = Literal["validating", "checking_availability", "adding_to_cart", "complete"]

T = TypeVar("T")


class BulkOrderRow(BaseModel):
    """One accepted CSV order line."""

    sku: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    notes: str | None = None
    reference_id: str | None = None
    priority: Priority = "normal"


class SecurityThreat(BaseModel):
    """A field that matched a threat pattern. ``value`` is truncated."""

    row: int
    column: str
    threat_type: ThreatType
    value: str = Field(max_length=50)
    message: str


class CSVParseError(BaseModel):
    """A row that could not be turned into a BulkOrderRow."""

    row: int
    column: str | None = None
    value: str | None = None
    message: str


class CSVParseSummary(BaseModel):
    total_rows: int = 0
    valid_rows: int = 0
    error_rows: int = 0
    total_quantity: int = 0
    unique_skus: int = 0


class CSVParseResult(BaseModel):
    """Outcome of parsing one upload."""

    rows: list[BulkOrderRow] = Field(default_factory=list)
    errors: list[CSVParseError] = Field(default_factory=list)
    security_threats: list[SecurityThreat] = Field(default_factory=list)
    summary: CSVParseSummary = Field(default_factory=CSVParseSummary)

    @property
    def success(self) -> bool:
        return not self.errors and not self.security_threats


@dataclass
class ProductCacheEntry(Generic[T]):
    """Cached value with its insertion time and hit count."""

    value: T
    timestamp: float = field(default_factory=time.monotonic)
    hits: int = 0


class CacheStats(BaseModel):
    size: int
    hits: int
    misses: int
    evictions: int
    expirations: int
    hit_rate: float
    oldest_entry_age: float | None = None
    most_accessed: list[tuple[str, int]] = Field(default_factory=list)


class BulkProgress(BaseModel):
    """Progress report emitted after each batch."""

    phase: BulkPhase
    processed: int
    total: int
    percentage: float
    current_batch: int
    total_batches: int
    eta_seconds: float | None = None


class BulkItemError(BaseModel):
    """A row that was not (fully) added to the cart."""

    sku: str
    quantity: int
    error: str
    attempts: int = 1


class BulkResult(BaseModel):
    """Outcome of processing a set of bulk rows."""

    items_processed: int = 0
    items_added: int = 0
    items_failed: int = 0
    """Rows that added nothing. Partially filled rows count as added but still carry an error entry."""
    total_quantity: int = 0
    total_value: float = 0.0
    processing_time_ms: float = 0.0
    errors: list[BulkItemError] = Field(default_factory=list)
    alternatives: dict[str, list[Product]] = Field(default_factory=dict)
    cart_commands: list[Command] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def summary(self) -> dict[str, Any]:
        return self.model_dump(exclude={"cart_commands", "alternatives", "errors"})
