"""Prometheus collectors for the execution engine.

Registered on the default registry, so the instrumentator's ``/metrics``
endpoint exposes them next to the HTTP metrics.
"""

from prometheus_client import Counter, Gauge, Histogram

EXECUTIONS = Counter(
    "judge_executions_total",
    "Finished executions by language and verdict",
    ["language", "verdict"],
)

BACKEND_FAILURES = Counter(
    "judge_backend_failures_total",
    "Execution backends that failed and were skipped",
    ["backend"],
)

EVENTS_DROPPED = Counter(
    "judge_events_dropped_total",
    "Events dropped because the publish queue was full",
)

EXECUTION_SECONDS = Histogram(
    "judge_execution_seconds",
    "Wall-clock duration of detached jobs",
    ["kind"],
    buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10, 20, 40, 80, 160),
)

JOBS_IN_FLIGHT = Gauge(
    "judge_jobs_in_flight",
    "Jobs admitted and currently executing",
)
