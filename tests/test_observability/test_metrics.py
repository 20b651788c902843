"""Tests for Prometheus metrics."""

from __future__ import annotations

from duplex.observability.metrics import (
    ACTIVE_STREAMS,
    BACKEND_EXCHANGE_TOTAL,
    TURN_TOTAL,
    get_content_type,
    get_metrics,
    record_exchange,
    record_reconnect,
    record_turn,
)


class TestMetricsModule:
    """Tests for metrics module functions."""

    def test_get_metrics_returns_bytes(self) -> None:
        """Test get_metrics returns bytes."""
        result = get_metrics()
        assert isinstance(result, bytes)

    def test_get_content_type(self) -> None:
        """Test get_content_type returns valid content type."""
        content_type = get_content_type()
        assert "text/plain" in content_type or "text/openmetrics" in content_type

    def test_record_turn(self) -> None:
        """Test turn outcomes are counted per label."""
        counter = TURN_TOTAL.labels(outcome="completed")
        before = counter._value.get()

        record_turn("completed")

        assert counter._value.get() == before + 1
        assert "duplex_turn_total" in get_metrics().decode("utf-8")

    def test_record_exchange(self) -> None:
        """Test exchanges are counted and their latency observed."""
        counter = BACKEND_EXCHANGE_TOTAL.labels(route="exchange", outcome="ok")
        before = counter._value.get()

        record_exchange("exchange", "ok", 0.8)

        assert counter._value.get() == before + 1
        output = get_metrics().decode("utf-8")
        assert "duplex_backend_exchange_total" in output
        assert "duplex_backend_exchange_seconds_bucket" in output

    def test_record_exchange_without_duration(self) -> None:
        record_exchange("transcribe", "empty")

        output = get_metrics().decode("utf-8")
        assert 'route="transcribe"' in output

    def test_record_reconnect(self) -> None:
        record_reconnect(True)
        record_reconnect(False)

        output = get_metrics().decode("utf-8")
        assert 'duplex_reconnect_total{result="success"}' in output
        assert 'duplex_reconnect_total{result="failure"}' in output


class TestGauges:
    """Tests for gauge metrics."""

    def test_active_streams_gauge(self) -> None:
        """Test active stream gauge can be incremented and decremented."""
        initial = ACTIVE_STREAMS._value.get()

        ACTIVE_STREAMS.inc()
        assert ACTIVE_STREAMS._value.get() == initial + 1

        ACTIVE_STREAMS.dec()
        assert ACTIVE_STREAMS._value.get() == initial


class TestMetricsEndpoint:
    """Tests for the /metrics endpoint."""

    def test_metrics_endpoint(self, test_client) -> None:
        """Test /metrics serves the Prometheus exposition format."""
        response = test_client.get("/metrics")

        assert response.status_code == 200
        assert "duplex_active_stream_connections" in response.text
