"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total join attempts',
    ['outcome']  # created, reactivated, full, weekly_limit, already_booked, not_joinable, ...
)

booking_cancellations = Counter(
    'booking_cancellations_total',
    'Member-initiated booking cancellations'
)

join_latency = Histogram(
    'booking_join_latency_seconds',
    'Join latency including time spent waiting on the term lock',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Term lifecycle metrics
term_transitions = Counter(
    'term_transitions_total',
    'Term status transitions',
    ['status']  # finished, cancelled
)

terms_purged = Counter(
    'terms_purged_total',
    'Finished terms removed by the retention job'
)

background_job_failures = Counter(
    'background_job_failures_total',
    'Background job runs that raised',
    ['job']
)

# Week generation metrics
generated_terms = Counter(
    'week_generated_terms_total',
    'Week generator candidates by result',
    ['result']  # inserted, skipped
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_booking_attempt(outcome: str):
    booking_attempts.labels(outcome=outcome).inc()


def record_term_transition(status: str, count: int = 1):
    if count:
        term_transitions.labels(status=status).inc(count)


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
