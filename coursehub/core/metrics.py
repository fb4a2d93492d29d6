"""Prometheus metric inventory.

Every metric the service exports is declared here; the modules that own
the behavior import and increment them.  Counters only go up, gauges go
up and down, histograms bucket observations so Prometheus can derive
percentiles (histogram_quantile over the _bucket series).
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Progress pipeline
# ---------------------------------------------------------------------------

PROGRESS_UPDATES = Counter(
    "progress_updates_total",
    "Persisted enrollment mutations by operation",
    ["operation"],  # enroll|lesson_complete|module_complete|time_spent|scores
)

VERSION_CONFLICTS = Counter(
    "enrollment_version_conflicts_total",
    "Optimistic-concurrency conflicts that forced a re-read of an enrollment",
)

CERTIFICATES_ISSUED = Counter(
    "certificates_issued_total",
    "Certificates persisted in issued status",
    ["trigger"],  # automatic|manual|reconciliation
)

CERTIFICATE_ISSUANCE_FAILURES = Counter(
    "certificate_issuance_failures_total",
    "Certificate issuance attempts that failed",
    ["reason"],  # exception class name
)

IDENTITY_COLLISIONS = Counter(
    "certificate_identity_collisions_total",
    "Generated certificate identifiers rejected by a uniqueness constraint",
    ["field"],  # certificate_number|verification_code
)

CERTIFICATE_VERIFICATIONS = Counter(
    "certificate_verifications_total",
    "Public verification lookups by result",
    ["result"],  # valid|not_found
)

# ---------------------------------------------------------------------------
# Supporting infrastructure
# ---------------------------------------------------------------------------

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["key_type"],  # user|ip
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # hit|miss
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)
