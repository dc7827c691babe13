"""Validation optimization state models.

Plain dataclasses shared by the debouncer, cache, tracker, memory monitor and
cleanup scheduler. Everything here lives in process memory only; ``to_dict``
helpers exist for the diagnostics endpoints.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Generic, Literal, Optional, TypeVar

T = TypeVar("T")

MemoryLevel = Literal["healthy", "warning", "critical"]


# =============================================================================
# DEBOUNCE
# =============================================================================

@dataclass
class DebounceRecord:
    """Per-caller debounce state.

    ``violation_count`` never decreases on its own; it is cleared only by
    dropping the whole record (reset or expiry).
    """
    last_request_at: Optional[float] = None   # last accepted request
    last_attempt_at: float = 0.0              # last request, accepted or not
    violation_count: int = 0
    request_count: int = 0


@dataclass(frozen=True)
class DebounceDecision:
    """Outcome of a debounce check. Rejections are values, not exceptions."""
    allowed: bool
    reason: Optional[str] = None
    wait_ms: Optional[float] = None
    violations: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class DebounceStats:
    active_users: int
    total_violations: int
    average_request_count: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# CACHE
# =============================================================================

@dataclass
class CacheEntry(Generic[T]):
    value: T
    created_at: float
    hits: int = 0


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    size: int
    max_size: int
    evictions: int
    expirations: int
    coalesced: int
    in_flight: int

    @property
    def hit_rate(self) -> float:
        """Hit percentage over all counted lookups."""
        lookups = self.hits + self.misses
        return (self.hits / lookups) * 100 if lookups else 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["hit_rate"] = round(self.hit_rate, 2)
        return data


# =============================================================================
# PERFORMANCE METRICS
# =============================================================================

@dataclass(frozen=True)
class MetricRecord:
    """One completed operation invocation."""
    operation: str
    duration_ms: float
    timestamp: float
    success: bool
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def cached(self) -> Optional[bool]:
        return self.metadata.get("cached")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
            "success": self.success,
            "cached": self.cached,
        }


@dataclass(frozen=True)
class PerformanceStats:
    total_operations: int
    average_duration_ms: float
    p50_ms: float
    p95_ms: float
    p99_ms: float
    success_rate: float
    cache_hit_rate: float
    operations_per_minute: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# MEMORY
# =============================================================================

@dataclass(frozen=True)
class MemoryReading:
    timestamp: float
    heap_used_mb: float
    rss_mb: float = 0.0
    vms_mb: float = 0.0
    percent: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "heap_used_mb": round(self.heap_used_mb, 2),
            "rss_mb": round(self.rss_mb, 2),
            "vms_mb": round(self.vms_mb, 2),
            "percent": round(self.percent, 2),
        }


@dataclass(frozen=True)
class MemoryTrend:
    increasing: bool
    average_mb: float
    peak_mb: float
    current_mb: float
    change_rate: float  # second-half average minus first-half average

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MemoryStatus:
    status: MemoryLevel
    heap_used_mb: float
    memory_percent: float
    trend: Optional[MemoryTrend] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "heap_used_mb": self.heap_used_mb,
            "memory_percent": self.memory_percent,
            "trend": self.trend.to_dict() if self.trend else None,
        }


# =============================================================================
# CLEANUP
# =============================================================================

@dataclass
class CleanupRunStats:
    """Process-wide cleanup counters; reset only by restart."""
    total_runs: int = 0
    last_run_at: Optional[float] = None
    last_run_reclaimed: int = 0
    cache_entries_cleaned: int = 0
    debounce_entries_cleaned: int = 0
    metrics_entries_cleaned: int = 0
    next_run_at: Optional[float] = None
    is_running: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# GUARD
# =============================================================================

@dataclass(frozen=True)
class GuardResult(Generic[T]):
    """Result of running an operation through the protection layer."""
    allowed: bool
    value: Optional[T] = None
    cached: bool = False
    reason: Optional[str] = None
    wait_ms: Optional[float] = None
    violations: Optional[int] = None
