"""Prometheus metrics for Chandler.

Counters and histograms for action execution, security rejections,
rate limiting, turn processing and bulk ingestion.
"""

from prometheus_client import Counter, Gauge, Histogram

# Action metrics
ACTION_CALLS = Counter(
    "chandler_action_calls_total",
    "Total number of action invocations",
    labelnames=["action_id", "status"],
)

ACTION_LATENCY = Histogram(
    "chandler_action_latency_seconds",
    "Action handler latency in seconds",
    labelnames=["action_id"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

ACTION_CACHE_EVENTS = Counter(
    "chandler_action_cache_events_total",
    "Compiled tool cache events",
    labelnames=["event"],
)

REGISTERED_ACTIONS = Gauge(
    "chandler_registered_actions",
    "Number of actions in the registry",
)

# Security metrics
SECURITY_REJECTIONS = Counter(
    "chandler_security_rejections_total",
    "Total number of judge rejections",
    labelnames=["category", "severity"],
)

# Rate limiting metrics
RATE_LIMIT_REJECTIONS = Counter(
    "chandler_rate_limit_rejections_total",
    "Total number of requests rejected by the rate limiter",
    labelnames=["tier"],
)

# Turn metrics
TURNS = Counter(
    "chandler_turns_total",
    "Total number of conversation turns by final state",
    labelnames=["final_state"],
)

TURN_STAGE_LATENCY = Histogram(
    "chandler_turn_stage_latency_seconds",
    "Latency of individual turn stages",
    labelnames=["stage"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

ACTIVE_STREAMS = Gauge(
    "chandler_active_streams",
    "Number of open streaming responses",
)

# Bulk metrics
BULK_ROWS = Counter(
    "chandler_bulk_rows_total",
    "Bulk CSV rows by outcome",
    labelnames=["outcome"],
)

PRODUCT_CACHE_EVENTS = Counter(
    "chandler_product_cache_events_total",
    "Product cache events",
    labelnames=["event"],
)
