"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Lifecycle metrics
lifecycle_operations = Counter(
    'lifecycle_operations_total',
    'Reservation lifecycle commands',
    ['operation', 'result']  # result: ok or the guard failure reason
)

seat_status_changes = Counter(
    'seat_status_changes_total',
    'Seat status writes',
    ['status']
)

# Violation detection metrics
violations_recorded = Counter(
    'violations_recorded_total',
    'Violations appended to the ledger',
    ['type']
)

violation_sweeps = Counter(
    'violation_sweeps_total',
    'Violation detection sweeps',
    ['result']  # completed, skipped, failed
)

violation_sweep_duration = Histogram(
    'violation_sweep_duration_seconds',
    'Violation sweep duration',
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

violation_sweep_errors = Counter(
    'violation_sweep_errors_total',
    'Errors isolated during a sweep',
    ['stage']  # expiry, snapshot, rule, handle
)

detector_running = Gauge(
    'violation_detector_running',
    'Violation detector state (1=running, 0=stopped)'
)

# HTTP metrics
http_requests = Counter(
    'http_requests_total',
    'HTTP requests by route template',
    ['method', 'route', 'status']
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )

# Convenience functions for instrumentation
def record_lifecycle(operation: str, result: str):
    """Record a lifecycle command outcome."""
    lifecycle_operations.labels(operation=operation, result=result).inc()

def record_seat_status(status: str):
    seat_status_changes.labels(status=status).inc()

def record_violation(violation_type: str):
    violations_recorded.labels(type=violation_type).inc()

def record_sweep(result: str):
    """Record sweep outcome. Result: completed, skipped, failed"""
    violation_sweeps.labels(result=result).inc()

def record_sweep_error(stage: str):
    violation_sweep_errors.labels(stage=stage).inc()

def record_http_request(method: str, route: str, status_code: int):
    http_requests.labels(method=method, route=route, status=str(status_code)).inc()

def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
