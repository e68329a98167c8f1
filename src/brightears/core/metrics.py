"""
In-memory request metrics for the /metrics endpoint (rough p50/p95).
Why: quick visibility into API latency and dropped streams without Prometheus.
"""

from collections import deque
from typing import Deque, Dict, List

LATENCY_WINDOW = 1000


def _percentile(values: List[int], p: float) -> int:
    if not values:
        return 0
    idx = max(0, min(len(values) - 1, int(len(values) * p)))
    return sorted(values)[idx]


class _Metrics:
    def __init__(self, window: int = LATENCY_WINDOW) -> None:
        self.total_requests = 0
        self.total_errors = 0
        self.dropped_connections = 0
        self._latencies: Deque[int] = deque(maxlen=window)

    def increment_requests(self) -> None:
        self.total_requests += 1

    def increment_errors(self) -> None:
        self.total_errors += 1

    def increment_dropped_connections(self) -> None:
        self.dropped_connections += 1

    def record_latency(self, ms: int) -> None:
        self._latencies.append(ms)

    def snapshot(self) -> Dict[str, int]:
        lat = list(self._latencies)
        return {
            "total_requests": self.total_requests,
            "total_errors": self.total_errors,
            "dropped_connections": self.dropped_connections,
            "p50_ms": _percentile(lat, 0.50),
            "p95_ms": _percentile(lat, 0.95),
        }


metrics = _Metrics()
