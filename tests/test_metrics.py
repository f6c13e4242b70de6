"""Tests for connection metrics counters."""

from metrics import MetricsRegistry


def test_records_responses_by_status() -> None:
    metrics = MetricsRegistry()

    metrics.record_response(status_code=20, duration_ms=3.0, bytes_sent=120)
    metrics.record_response(status_code=51, duration_ms=700.0, bytes_sent=19)
    metrics.record_response(status_code=20, duration_ms=9000.0, bytes_sent=80)

    snapshot = metrics.snapshot()
    assert snapshot["total_responses"] == 3
    assert snapshot["status_counts"] == {"20": 2, "51": 1}
    assert snapshot["bytes_sent_total"] == 219
    assert snapshot["latency_buckets_ms"] == {"<= 5ms": 1, "<= 1000ms": 1, "> 5000ms": 1}


def test_tracks_connection_lifecycle() -> None:
    metrics = MetricsRegistry()

    metrics.connection_opened()
    metrics.connection_opened()
    metrics.connection_closed()
    metrics.connection_rejected()

    snapshot = metrics.snapshot()
    assert snapshot["connections_total"] == 2
    assert snapshot["active_connections"] == 1
    assert snapshot["rejected_connections"] == 1


def test_active_connections_never_go_negative() -> None:
    metrics = MetricsRegistry()

    metrics.connection_closed()

    assert metrics.snapshot()["active_connections"] == 0


def test_errors_are_counted_by_type() -> None:
    metrics = MetricsRegistry()

    metrics.record_read_error("SocketTimeoutError")
    metrics.record_read_error("SocketTimeoutError")
    metrics.record_write_error("BrokenPipeError")
    metrics.record_handshake_error("SSLError")

    snapshot = metrics.snapshot()
    assert snapshot["read_errors_by_type"] == {"SocketTimeoutError": 2}
    assert snapshot["write_errors_by_type"] == {"BrokenPipeError": 1}
    assert snapshot["handshake_errors_by_type"] == {"SSLError": 1}
