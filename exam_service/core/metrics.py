"""Application metrics using the Prometheus client library.

Single inventory of everything the service measures.  Other modules
import a metric and increment/observe it at the point of action.

Two families:

  HTTP metrics: populated by MetricsMiddleware for every request.

  Scoring metrics: incremented by the engine itself.  These answer the
  questions an exam-day dashboard needs: how many attempts started, how
  many submissions were forced by the timer, how often a stale client
  raced a second submit, and how much work a key change fanned out to.
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
# Scoring engine metrics
# ---------------------------------------------------------------------------

ATTEMPTS_STARTED = Counter(
    "exam_attempts_started_total",
    "Exam attempts created",
)

ATTEMPTS_SUBMITTED = Counter(
    "exam_attempts_submitted_total",
    "Exam attempts moved to submitted",
    ["trigger"],  # manual|time_expired|expired
)

STATE_CONFLICTS = Counter(
    "exam_state_conflicts_total",
    "Rejected state transitions",
    ["reason"],  # already_submitted|max_attempts|not_open|not_published|...
)

GRADING_INTEGRITY_FAULTS = Counter(
    "exam_grading_integrity_faults_total",
    "Questions graded against an answer key that violates its invariant",
)

RECALCULATED_RECORDS = Counter(
    "exam_recalculated_records_total",
    "Records rewritten by answer-key recalculation",
    ["kind"],  # attempt|submission|result
)

RECALCULATION_DURATION = Histogram(
    "exam_recalculation_duration_seconds",
    "Wall time of one answer-key recalculation batch",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

NOTIFICATION_FAILURES = Counter(
    "exam_notification_failures_total",
    "Events that could not be handed to the notification sink",
    ["event"],
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],  # "notifications", "recalculation"
)

TASK_FAILURES = Counter(
    "task_failures_total",
    "Failed tasks by what the worker did with them",
    ["queue_name", "outcome"],  # "requeued", "dead_lettered", "dropped"
)
