"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# Connection metrics
realtime_connections = Gauge(
    'realtime_connections',
    'Number of open websocket connections'
)

inbound_events = Counter(
    'inbound_events_total',
    'Inbound websocket events',
    ['event', 'outcome']  # ok, validation_error, not_found, forbidden, conflict, persistence_error
)

event_latency = Histogram(
    'inbound_event_latency_seconds',
    'Time spent handling one inbound event',
    ['event'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Booking metrics
booking_transitions = Counter(
    'booking_transitions_total',
    'Booking request transition attempts',
    ['transition', 'result']  # transition: create/accept/cancel/complete/disconnect/expire
)

# Fan-out metrics
fanout_deliveries = Counter(
    'fanout_deliveries_total',
    'Outbound deliveries to individual connections',
    ['result']  # delivered, failed, timeout
)

# Throttle metrics
throttle_decisions = Counter(
    'location_throttle_decisions_total',
    'Location broadcast throttle decisions',
    ['result']  # allowed, suppressed
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)

redis_circuit_breaker_open = Gauge(
    'redis_circuit_breaker_open',
    'Redis circuit breaker state (1=open, 0=closed)'
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


def record_inbound_event(event: str, outcome: str):
    """Record handled inbound event. Outcome: ok or an error code."""
    inbound_events.labels(event=event, outcome=outcome).inc()


def record_transition(transition: str, result: str):
    """Record booking transition. Result: success, conflict, forbidden, not_found, error"""
    booking_transitions.labels(transition=transition, result=result).inc()


def record_delivery(result: str):
    """Record one fan-out delivery. Result: delivered, failed, timeout"""
    fanout_deliveries.labels(result=result).inc()


def record_throttle(allowed: bool):
    """Record throttle decision."""
    result = "allowed" if allowed else "suppressed"
    throttle_decisions.labels(result=result).inc()
