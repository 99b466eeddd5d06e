"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Inventory ledger
reservation_attempts = Counter(
    'reservation_attempts_total',
    'Seat reservation attempts against the inventory ledger',
    ['result']  # reserved, sold_out, conflict, released
)

# Order lifecycle
order_transitions = Counter(
    'order_transitions_total',
    'Order state transitions',
    ['status']  # PENDING, PAID, CANCELLED, EXPIRED
)

checkout_latency = Histogram(
    'checkout_latency_seconds',
    'Checkout (create order) latency',
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

# Exchange codes
exchange_redemptions = Counter(
    'exchange_code_redemptions_total',
    'Exchange code redemption attempts',
    ['result']  # redeemed, not_found, already_used
)

# Door
checkins = Counter(
    'ticket_checkins_total',
    'Ticket check-in attempts',
    ['result']  # checked_in, not_found, invalid_order, already_used
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_reservation(result: str):
    reservation_attempts.labels(result=result).inc()


def record_order_transition(status: str):
    order_transitions.labels(status=status).inc()


def record_redemption(result: str):
    exchange_redemptions.labels(result=result).inc()


def record_checkin(result: str):
    checkins.labels(result=result).inc()
