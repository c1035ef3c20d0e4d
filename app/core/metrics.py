"""Application metrics using the Prometheus client library.

All metrics are defined here so the inventory of what the service
measures lives in one place.  Other modules import a metric and
increment or observe it at the point of action.

HTTP metrics are populated by MetricsMiddleware.  The domain counters
below are what a progress dashboard is built from:

  rate(progress_events_total{completed="true"}[5m])
      completions per second, by content type

  sum(quiz_attempts_graded_total{passed="false"})
    / sum(quiz_attempts_graded_total)
      quiz failure ratio
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
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
# Application-specific metrics
# ---------------------------------------------------------------------------

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Summary cache operations",
    ["operation"],  # "hit", "miss", "set", "invalidate", "error"
)

PROGRESS_EVENTS = Counter(
    "progress_events_total",
    "Progress events appended to the log",
    ["content_type", "completed"],
)

QUIZ_ATTEMPTS_GRADED = Counter(
    "quiz_attempts_graded_total",
    "Quiz attempts graded, by outcome",
    ["passed"],
)

ENROLLMENT_COMPLETIONS = Counter(
    "enrollment_completions_total",
    "Enrollments that reached COMPLETED for the first time",
)

RECOMPUTE_DURATION = Histogram(
    "progress_recompute_duration_seconds",
    "Time spent recomputing derived progress state",
    ["scope"],  # "lesson", "enrollment", "rebuild"
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)
