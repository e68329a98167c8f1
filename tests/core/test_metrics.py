"""Tests for metrics collector."""

from brightears.core.metrics import _Metrics, _percentile


def test_percentile_empty_list():
    """Test percentile with empty list."""
    assert _percentile([], 0.5) == 0


def test_percentile_single_value():
    """Test percentile with single value."""
    assert _percentile([100], 0.5) == 100


def test_percentile_multiple_values():
    """Test percentile calculation."""
    values = [10, 20, 30, 40, 50, 60, 70, 80, 90, 100]
    assert _percentile(values, 0.50) in [50, 60]
    assert _percentile(values, 0.95) in [90, 100]


def test_metrics_counters():
    m = _Metrics()
    m.increment_requests()
    m.increment_errors()
    m.increment_dropped_connections()
    m.increment_dropped_connections()
    snapshot = m.snapshot()
    assert snapshot["total_requests"] == 1
    assert snapshot["total_errors"] == 1
    assert snapshot["dropped_connections"] == 2


def test_latency_window_is_bounded():
    m = _Metrics(window=3)
    for ms in (1000, 1000, 10, 20, 30):
        m.record_latency(ms)
    assert list(m._latencies) == [10, 20, 30]
    assert m.snapshot()["p95_ms"] == 30


def test_metrics_snapshot_keys():
    """Test metrics snapshot format."""
    snapshot = _Metrics().snapshot()
    assert set(snapshot) == {
        "total_requests",
        "total_errors",
        "dropped_connections",
        "p50_ms",
        "p95_ms",
    }
