"""Operation latency and outcome tracking.

Append-only metric log with windowed aggregation. Records older than the
retention window are ignored by every read and removed by ``prune()``.
"""

import math
import threading
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, TypeVar

from core.logging import get_logger, log_slow_operation
from .models import MetricRecord, PerformanceStats

logger = get_logger(__name__)

T = TypeVar("T")

EndOperation = Callable[..., MetricRecord]


def percentile(sorted_values: List[float], pct: float) -> float:
    """Nearest-rank percentile of an ascending list."""
    index = math.ceil((pct / 100) * len(sorted_values)) - 1
    return sorted_values[max(0, index)]


class PerformanceTracker:
    """Collects MetricRecords and aggregates them per operation name."""

    def __init__(
        self,
        retention: float = 300.0,
        max_records: int = 1000,
        slow_threshold_ms: float = 1000.0,
        clock: Callable[[], float] = time.time,
        timer: Callable[[], float] = time.perf_counter,
    ):
        """Initialize tracker.

        Args:
            retention: Seconds a record stays visible to stats
            max_records: Hard cap on stored records, oldest dropped first
            slow_threshold_ms: Durations above this are logged as slow
            clock: Wall-clock source for record timestamps
            timer: Monotonic source for measuring durations
        """
        self.retention = retention
        self.max_records = max_records
        self.slow_threshold_ms = slow_threshold_ms
        self._clock = clock
        self._timer = timer
        self._metrics: Deque[MetricRecord] = deque(maxlen=max_records)
        self._lock = threading.Lock()

    def start_operation(self, operation: str) -> EndOperation:
        """Start a timing span.

        Returns:
            ``end(success=True, metadata=None)`` which records the span
        """
        started = self._timer()

        def end(success: bool = True, metadata: Optional[Dict[str, Any]] = None) -> MetricRecord:
            record = MetricRecord(
                operation=operation,
                duration_ms=(self._timer() - started) * 1000,
                timestamp=self._clock(),
                success=success,
                metadata=dict(metadata or {}),
            )
            self.record_metric(record)
            return record

        return end

    async def measure(
        self,
        operation: str,
        fn: Callable[[], Awaitable[T]],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> T:
        """Await ``fn()`` and record its duration and outcome. Errors re-raise."""
        end = self.start_operation(operation)
        success = True
        try:
            return await fn()
        except Exception:
            success = False
            raise
        finally:
            end(success, metadata)

    def record_metric(self, record: MetricRecord) -> None:
        with self._lock:
            self._metrics.append(record)
        if record.duration_ms > self.slow_threshold_ms:
            log_slow_operation(logger, record.operation, record.duration_ms,
                               self.slow_threshold_ms, success=record.success)

    def get_stats(self, operation: Optional[str] = None) -> Optional[PerformanceStats]:
        """Aggregate in-window records, optionally for a single operation.

        Returns:
            PerformanceStats, or None when nothing matches
        """
        now = self._clock()
        relevant = [
            m for m in self._window(now)
            if operation is None or m.operation == operation
        ]
        if not relevant:
            return None

        total = len(relevant)
        durations = sorted(m.duration_ms for m in relevant)
        successes = sum(1 for m in relevant if m.success)
        cache_hits = sum(1 for m in relevant if m.cached is True)

        # At least one second of span so a burst doesn't read as infinite rate
        oldest = min(m.timestamp for m in relevant)
        span = max(1.0, min(self.retention, now - oldest))

        return PerformanceStats(
            total_operations=total,
            average_duration_ms=sum(durations) / total,
            p50_ms=percentile(durations, 50),
            p95_ms=percentile(durations, 95),
            p99_ms=percentile(durations, 99),
            success_rate=(successes / total) * 100,
            cache_hit_rate=(cache_hits / total) * 100,
            operations_per_minute=round(total / (span / 60), 2),
        )

    def get_operation_types(self) -> List[str]:
        """Distinct operation names in first-seen order."""
        with self._lock:
            return list(dict.fromkeys(m.operation for m in self._metrics))

    def get_slow_operations(self, threshold_ms: float = 500.0, limit: int = 10) -> List[MetricRecord]:
        """Slowest in-window records above ``threshold_ms``, slowest first."""
        slow = [m for m in self._window(self._clock()) if m.duration_ms > threshold_ms]
        slow.sort(key=lambda m: m.duration_ms, reverse=True)
        return slow[:limit]

    def clear_metrics(self) -> None:
        with self._lock:
            self._metrics.clear()

    def prune(self) -> int:
        """Drop records older than the retention window.

        Returns:
            Number of records removed
        """
        now = self._clock()
        with self._lock:
            before = len(self._metrics)
            kept = [m for m in self._metrics if now - m.timestamp <= self.retention]
            self._metrics = deque(kept, maxlen=self.max_records)
        return before - len(kept)

    cleanup = prune

    def __len__(self) -> int:
        return len(self._metrics)

    def _window(self, now: float) -> List[MetricRecord]:
        with self._lock:
            return [m for m in self._metrics if now - m.timestamp <= self.retention]
