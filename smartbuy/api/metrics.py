"""Metrics service for the suggestion endpoints.

Process-wide counters for ranking calls, their latency, and how often the
engine had to fall back to unranked output.
"""

import threading
from typing import Dict, Optional


class MetricsService:
    """Thread-safe singleton tracking ranking calls and latency."""

    _instance: Optional["MetricsService"] = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(MetricsService, cls).__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._counter_lock = threading.Lock()
        self._ranking_count = 0
        self._fallback_count = 0
        self._interaction_count = 0
        self._total_latency_ms = 0.0
        self._min_latency_ms = float("inf")
        self._max_latency_ms = 0.0
        self._initialized = True

    def record_ranking(self, latency_ms: float, fallback: bool = False) -> None:
        """Record one ranking call.

        Args:
            latency_ms: Wall time of the call in milliseconds.
            fallback: Whether the result was a neutral or random ordering.
        """
        with self._counter_lock:
            self._ranking_count += 1
            self._total_latency_ms += latency_ms
            if fallback:
                self._fallback_count += 1
            self._min_latency_ms = min(self._min_latency_ms, latency_ms)
            self._max_latency_ms = max(self._max_latency_ms, latency_ms)

    def record_interaction(self) -> None:
        with self._counter_lock:
            self._interaction_count += 1

    def get_metrics(self) -> Dict:
        """Current counters, latencies rounded to 2 decimals."""
        with self._counter_lock:
            avg_latency = (
                self._total_latency_ms / self._ranking_count if self._ranking_count > 0 else 0.0
            )
            min_latency = 0.0 if self._min_latency_ms == float("inf") else self._min_latency_ms
            return {
                "ranking_count": self._ranking_count,
                "fallback_count": self._fallback_count,
                "interaction_count": self._interaction_count,
                "average_latency_ms": round(avg_latency, 2),
                "min_latency_ms": round(min_latency, 2),
                "max_latency_ms": round(self._max_latency_ms, 2),
            }

    def reset(self) -> None:
        with self._counter_lock:
            self._ranking_count = 0
            self._fallback_count = 0
            self._interaction_count = 0
            self._total_latency_ms = 0.0
            self._min_latency_ms = float("inf")
            self._max_latency_ms = 0.0


# Global singleton instance
metrics_service = MetricsService()
