"""Prometheus metric inventory.

Every metric the service exports is declared here; the owning modules
import and increment them at the point of action. Counters only go up,
the gauge tracks in-flight requests, and the histogram buckets request
latency so dashboards can derive percentiles.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, route template, and status code",
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
# Progression metrics
# ---------------------------------------------------------------------------

CONTENT_COMPLETIONS = Counter(
    "content_completions_total",
    "Content items that crossed the completion threshold for the first time",
)

CHAPTER_COMPLETIONS = Counter(
    "chapter_completions_total",
    "Chapters marked completed by the completion cascade",
)

MODULE_COMPLETIONS = Counter(
    "module_completions_total",
    "Modules marked completed by the completion cascade",
)

QUIZ_SUBMISSIONS = Counter(
    "quiz_submissions_total",
    "Quiz submissions by outcome",
    ["result"],  # passed|failed|rejected
)

LOCKED_ACCESS = Counter(
    "locked_access_total",
    "Requests refused because a prerequisite is not completed",
    ["entity"],  # content|quiz
)

CACHE_OPERATIONS = Counter(
    "progress_cache_operations_total",
    "Progress read-cache operations by outcome",
    ["operation"],  # hit|miss|invalidate|invalidate_failed
)

NOTIFICATION_FAILURES = Counter(
    "notification_failures_total",
    "Module-completed notifications that could not be enqueued",
)

CERTIFICATES_ISSUED = Counter(
    "certificates_issued_total",
    "Completion certificates issued by tier",
    ["tier"],  # BRONZE|SILVER|GOLD
)
