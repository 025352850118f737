"""Bulk order ingestion: secure CSV parsing, product cache, batch processing."""

from chandler.bulk.cache import CachedProductFetcher, ProductCache
from chandler.bulk.models import (
    BulkItemError,
    BulkOrderRow,
    BulkProgress,
    BulkResult,
    CacheStats,
    CSVParseError,
    CSVParseResult,
    CSVParseSummary,
    ProductCacheEntry,
    SecurityThreat,
)
from chandler.bulk.parser import SecureCSVParser, generate_secure_csv, sanitize_identifier
from chandler.bulk.processor import BulkProcessor

__all__ = [
    "BulkItemError",
    "BulkOrderRow",
    "BulkProcessor",
    "BulkProgress",
    "BulkResult",
    "CSVParseError",
    "CSVParseResult",
    "CSVParseSummary",
    "CacheStats",
    "CachedProductFetcher",
    "ProductCache",
    "ProductCacheEntry",
    "SecureCSVParser",
    "SecurityThreat",
    "generate_secure_csv",
    "sanitize_identifier",
]
