"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Order lifecycle metrics
order_completions = Counter(
    'order_completions_total',
    'Order completion attempts',
    ['result']  # completed, duplicate, capacity, conflict, error
)

order_completion_latency = Histogram(
    'order_completion_latency_seconds',
    'Order completion latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

order_transitions = Counter(
    'order_transitions_total',
    'Order state transitions',
    ['to_status']
)

tickets_minted = Counter(
    'tickets_minted_total',
    'Tickets minted at order completion'
)

# Seat ledger metrics
seat_conflicts = Counter(
    'seat_conflicts_total',
    'Seat reservations rejected because the slot was already held',
    ['stage']  # preflight, reserve, completion
)

seats_released = Counter(
    'seats_released_total',
    'Seat reservations released'
)

# Storage metrics
cas_retries = Counter(
    'cas_retry_attempts_total',
    'Compare-and-swap retries due to version conflicts',
    ['entity']  # tier, bundle, staff, credits
)

lock_wait = Histogram(
    'entity_lock_wait_seconds',
    'Time spent waiting for entity locks',
    buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0]
)

# Commission and credit metrics
commissions_recorded = Counter(
    'staff_commissions_recorded_total',
    'Staff sales recorded',
    ['commission_type']
)

referrals_dropped = Counter(
    'referrals_dropped_total',
    'Referral codes dropped at order creation',
    ['reason']
)

credit_allocations = Counter(
    'credit_allocations_total',
    'Credit allocation attempts',
    ['result']  # granted, insufficient
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


def record_completion(result: str):
    """Record order completion attempt. Result: completed, duplicate, capacity, conflict, error"""
    order_completions.labels(result=result).inc()


def record_transition(to_status: str):
    order_transitions.labels(to_status=to_status).inc()


def record_seat_conflict(stage: str):
    seat_conflicts.labels(stage=stage).inc()


def record_cas_retry(entity: str):
    """Record a version-conflict retry on a ledger row."""
    cas_retries.labels(entity=entity).inc()


def record_commission(commission_type: str):
    commissions_recorded.labels(commission_type=commission_type).inc()


def record_referral_dropped(reason: str):
    referrals_dropped.labels(reason=reason).inc()


def record_credit_allocation(granted: bool):
    result = "granted" if granted else "insufficient"
    credit_allocations.labels(result=result).inc()
