"""
Prometheus metrics for the UV dashboard forecast proxy.
"""
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

# Application info metric
app_info = Info(
    "uvdash_app_info",
    "Application information for the UV dashboard server",
)

# Request metrics
request_counter = Counter(
    "uvdash_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"],
)

# Latency metrics
request_duration = Histogram(
    "uvdash_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Cache metrics
cache_lookup_counter = Counter(
    "uvdash_cache_lookups_total",
    "Total number of forecast cache lookups",
    ["kind", "result"],
)

cache_entries = Gauge(
    "uvdash_cache_entries",
    "Current number of forecast cache entries",
)

cache_evictions_counter = Counter(
    "uvdash_cache_evictions_total",
    "Total number of cache entries removed by the daily sweep",
)

background_refresh_counter = Counter(
    "uvdash_background_refreshes_total",
    "Total number of background cache refreshes",
    ["kind", "outcome"],
)

# Upstream metrics
upstream_call_counter = Counter(
    "uvdash_upstream_calls_total",
    "Total number of forecast API calls",
    ["kind", "outcome"],
)

upstream_call_duration = Histogram(
    "uvdash_upstream_call_duration_seconds",
    "Forecast API call duration in seconds",
    ["kind"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

# Health metrics
health_check_counter = Counter(
    "uvdash_health_checks_total",
    "Total number of health check requests",
    ["status"],
)


def set_app_info(version: str, environment: str = "production"):
    """Set application information."""
    app_info.info(
        {"version": version, "environment": environment, "application": "uvdash"}
    )


def get_metrics() -> bytes:
    """Get all metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
