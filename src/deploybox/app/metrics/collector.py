"""Prometheus metrics definitions for the deploy engine."""

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Histogram Buckets (optimized by latency category)
# =============================================================================

# FAST: HTTP handlers, DB queries (5ms ~ 5s)
_BUCKETS_FAST = (
    0.005, 0.01, 0.02, 0.05, 0.1,
    0.2, 0.5, 1, 2, 5,
)

# SLOW: image builds and full deploys (100ms ~ 10min)
_BUCKETS_SLOW = (
    0.1, 0.5, 1, 2.5, 5,
    10, 20, 40, 80, 160,
    300, 600,
)

# =============================================================================
# HTTP Metrics
# =============================================================================

HTTP_REQUESTS_TOTAL = Counter(
    "deploybox_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

HTTP_REQUEST_DURATION = Histogram(
    "deploybox_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "endpoint"],
    buckets=_BUCKETS_FAST,
)

# =============================================================================
# Deploy Metrics
# =============================================================================

DEPLOYS_TOTAL = Counter(
    "deploybox_deploys_total",
    "Deploy attempts by outcome",
    ["outcome"],  # success, or the error code
)

DEPLOY_DURATION = Histogram(
    "deploybox_deploy_duration_seconds",
    "Duration of deploy attempts",
    ["archetype"],
    buckets=_BUCKETS_SLOW,
)

TEARDOWNS_TOTAL = Counter(
    "deploybox_teardowns_total",
    "Instance teardowns by reason",
    ["reason"],  # user, expired
)

# =============================================================================
# Reaper / Pool Metrics
# =============================================================================

REAPER_CYCLES_TOTAL = Counter(
    "deploybox_reaper_cycles_total",
    "Expiration reaper cycles executed",
)

REAPER_REAPED_TOTAL = Counter(
    "deploybox_reaper_reaped_total",
    "Instances reclaimed by the reaper",
)

PORTS_LEASED = Gauge(
    "deploybox_ports_leased",
    "Host ports currently leased",
)
