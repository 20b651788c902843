"""Prometheus metrics for duplex.

Covers turn outcomes on the client side and backend exchange latency on
the server side.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

# =============================================================================
# Counters
# =============================================================================

TURN_TOTAL = Counter(
    "duplex_turn_total",
    "Conversation turns by outcome",
    ["outcome"],
)

RECONNECT_TOTAL = Counter(
    "duplex_reconnect_total",
    "Streaming reconnection attempts by result",
    ["result"],
)

BACKEND_EXCHANGE_TOTAL = Counter(
    "duplex_backend_exchange_total",
    "Backend exchanges handled, by route and outcome",
    ["route", "outcome"],
)

# =============================================================================
# Gauges
# =============================================================================

ACTIVE_STREAMS = Gauge(
    "duplex_active_stream_connections",
    "Currently open streaming conversation connections",
)

# =============================================================================
# Histograms
# =============================================================================

EXCHANGE_LATENCY = Histogram(
    "duplex_backend_exchange_seconds",
    "Backend time from received utterance to synthesized reply",
    buckets=[0.25, 0.5, 0.75, 1.0, 1.5, 2.0, 3.0, 5.0, 10.0, 30.0],
)

# =============================================================================
# Helper Functions
# =============================================================================


def record_turn(outcome: str) -> None:
    """Count a finished turn.

    Args:
        outcome: One of completed, empty, failed, timeout, abandoned
    """
    TURN_TOTAL.labels(outcome=outcome).inc()


def record_reconnect(succeeded: bool) -> None:
    RECONNECT_TOTAL.labels(result="success" if succeeded else "failure").inc()


def record_exchange(route: str, outcome: str, duration_seconds: float | None = None) -> None:
    """Record a backend exchange and, when it produced a reply, its latency."""
    BACKEND_EXCHANGE_TOTAL.labels(route=route, outcome=outcome).inc()
    if duration_seconds is not None and duration_seconds > 0:
        EXCHANGE_LATENCY.observe(duration_seconds)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output.

    Returns:
        Metrics in Prometheus text exposition format.
    """
    return generate_latest()


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST
