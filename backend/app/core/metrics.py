"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Booking metrics
booking_attempts = Counter(
    "booking_attempts_total",
    "Seat reservation attempts",
    ["outcome"],  # reserved, seat_taken, busy
)

booking_transitions = Counter(
    "booking_transitions_total",
    "Booking lifecycle transitions",
    ["action", "result"],  # confirm/cancel/delete, ok/rejected
)

# Lock metrics
lock_wait_latency = Histogram(
    "lock_wait_seconds",
    "Time spent waiting for a per-key lock",
    ["kind"],  # seat, booking, redemption
    buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

lock_timeouts = Counter(
    "lock_timeouts_total",
    "Per-key lock acquisitions that gave up",
    ["kind"],
)

# Loyalty metrics
redemptions = Counter(
    "point_redemptions_total",
    "Loyalty redemption requests",
    ["result"],  # redeemed, insufficient
)

# Notification metrics
notifications_sent = Counter(
    "notifications_total",
    "Notification send attempts",
    ["channel", "outcome"],  # sms/email, sent/failed
)

# Sweeper metrics
trips_swept = Counter(
    "trips_swept_total",
    "Trips marked arrived by the cleanup sweeper",
)


def metrics_endpoint() -> Response:
    """Prometheus scrape payload."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


def record_booking_attempt(outcome: str):
    """Outcome: reserved, seat_taken, busy"""
    booking_attempts.labels(outcome=outcome).inc()


def record_transition(action: str, ok: bool):
    booking_transitions.labels(action=action, result="ok" if ok else "rejected").inc()


def record_notification(channel: str, sent: bool):
    notifications_sent.labels(channel=channel, outcome="sent" if sent else "failed").inc()


def record_redemption(redeemed: bool):
    redemptions.labels(result="redeemed" if redeemed else "insufficient").inc()


# Cache metrics
upcoming_cache_lookups = Counter(
    "upcoming_trips_cache_total",
    "Upcoming-trip listing cache lookups",
    ["result"],  # hit, miss, error
)


def record_cache_lookup(result: str):
    upcoming_cache_lookups.labels(result=result).inc()
