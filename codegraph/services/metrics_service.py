"""
Metrics context
Owned, lock-guarded aggregate of query latency, generation latency and feedback counters
"""

import logging
import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, Optional

from codegraph.core.types.common_types import Polarity

logger = logging.getLogger(__name__)

MAX_LATENCY_SAMPLES = 1000


@dataclass
class MetricsSnapshot:
    avg_query_latency_ms: float = 0.0
    avg_generation_latency_ms: float = 0.0
    p95_query_latency_ms: float = 0.0
    query_count: int = 0
    total_feedback: int = 0
    positive_count: int = 0
    negative_count: int = 0
    positive_ratio: float = 0.0
    negative_ratio: float = 0.0
    average_confidence_delta: float = 0.0
    counters: Dict[str, int] = field(default_factory=dict)
    since: Optional[str] = None

    def is_positive_trending(self) -> bool:
        return self.positive_ratio > 0.6

    def is_negative_trending(self) -> bool:
        return self.negative_ratio > 0.6

    def is_balanced(self) -> bool:
        return 0.4 <= self.positive_ratio <= 0.6

    def net_confidence_impact(self) -> float:
        return self.average_confidence_delta * self.total_feedback

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _average(values) -> float:
    return sum(values) / len(values) if values else 0.0


class MetricsContext:
    """
    Created once per engine and passed to every component that records observations.
    All reads and writes take the same lock, so snapshots are consistent.
    """

    def __init__(self, max_samples: int = MAX_LATENCY_SAMPLES):
        self._lock = threading.Lock()
        self._max_samples = max_samples
        self._query_latencies: deque = deque(maxlen=max_samples)
        self._generation_latencies: deque = deque(maxlen=max_samples)
        self._counters: Dict[str, int] = defaultdict(int)
        self._positive = 0
        self._negative = 0
        self._confidence_delta_sum = 0.0
        self._last_reset = datetime.now()

    def increment(self, name: str, value: int = 1):
        """Increment a counter"""
        with self._lock:
            self._counters[name] += value

    def record_query_latency(self, duration_ms: float):
        with self._lock:
            self._query_latencies.append(duration_ms)

    def record_generation_latency(self, duration_ms: float):
        with self._lock:
            self._generation_latencies.append(duration_ms)

    def record_feedback(self, polarity: Polarity, confidence_delta: float):
        with self._lock:
            if polarity.is_positive:
                self._positive += 1
            else:
                self._negative += 1
            self._confidence_delta_sum += confidence_delta

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            total = self._positive + self._negative
            sorted_queries = sorted(self._query_latencies)
            p95 = sorted_queries[min(int(len(sorted_queries) * 0.95), len(sorted_queries) - 1)] if sorted_queries else 0.0
            return MetricsSnapshot(
                avg_query_latency_ms=_average(self._query_latencies),
                avg_generation_latency_ms=_average(self._generation_latencies),
                p95_query_latency_ms=p95,
                query_count=len(self._query_latencies),
                total_feedback=total,
                positive_count=self._positive,
                negative_count=self._negative,
                positive_ratio=self._positive / total if total else 0.0,
                negative_ratio=self._negative / total if total else 0.0,
                average_confidence_delta=self._confidence_delta_sum / total if total else 0.0,
                counters=dict(self._counters),
                since=self._last_reset.isoformat()
            )

    def reset(self):
        """Reset all metrics"""
        with self._lock:
            self._query_latencies.clear()
            self._generation_latencies.clear()
            self._counters.clear()
            self._positive = 0
            self._negative = 0
            self._confidence_delta_sum = 0.0
            self._last_reset = datetime.now()
        logger.info("Metrics reset")

