"""Observability module for metrics."""

from duplex.observability.metrics import (
    ACTIVE_STREAMS,
    BACKEND_EXCHANGE_TOTAL,
    EXCHANGE_LATENCY,
    RECONNECT_TOTAL,
    TURN_TOTAL,
    record_exchange,
    record_reconnect,
    record_turn,
)

__all__ = [
    "TURN_TOTAL",
    "RECONNECT_TOTAL",
    "BACKEND_EXCHANGE_TOTAL",
    "ACTIVE_STREAMS",
    "EXCHANGE_LATENCY",
    "record_turn",
    "record_reconnect",
    "record_exchange",
]
