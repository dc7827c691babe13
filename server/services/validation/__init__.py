"""Validation optimization layer.

Protects an expensive validation call with:
- Per-caller debouncing with escalating lockout
- TTL/LRU result caching with single-flight fetch coalescing
- Per-operation latency, success and cache-hit tracking
- Background memory sampling with trend detection
- Periodic cleanup of stale state across all of the above
"""

from .models import (
    DebounceRecord,
    DebounceDecision,
    DebounceStats,
    CacheEntry,
    CacheStats,
    MetricRecord,
    PerformanceStats,
    MemoryReading,
    MemoryTrend,
    MemoryStatus,
    CleanupRunStats,
    GuardResult,
)
from .debounce import RequestDebouncer
from .cache import ValidationCache
from .performance import PerformanceTracker
from .memory_monitor import MemoryMonitor
from .cleanup import CleanupScheduler
from .guard import ValidationGuard

__all__ = [
    # Models
    "DebounceRecord",
    "DebounceDecision",
    "DebounceStats",
    "CacheEntry",
    "CacheStats",
    "MetricRecord",
    "PerformanceStats",
    "MemoryReading",
    "MemoryTrend",
    "MemoryStatus",
    "CleanupRunStats",
    "GuardResult",
    # Components
    "RequestDebouncer",
    "ValidationCache",
    "PerformanceTracker",
    "MemoryMonitor",
    "CleanupScheduler",
    "ValidationGuard",
]
