"""Periodic cleanup service for the validation layer.

One background task runs a pass per interval. Each sub-step is isolated
and a failing step is logged and counted as zero.
"""
import asyncio
import time
from typing import Callable, Dict, Optional, TYPE_CHECKING

from core.logging import get_logger
from .models import CleanupRunStats

if TYPE_CHECKING:
    from .cache import ValidationCache
    from .debounce import RequestDebouncer
    from .memory_monitor import MemoryMonitor
    from .performance import PerformanceTracker

logger = get_logger(__name__)


class CleanupScheduler:
    """Background cleanup to bound memory held by the validation layer.

    Each pass prunes, in order:
    - Expired cache entries
    - Idle debounce records
    - Performance metrics outside the retention window
    and forces garbage collection when the memory monitor reports critical.
    """

    def __init__(
        self,
        cache: "ValidationCache",
        debouncer: "RequestDebouncer",
        tracker: "PerformanceTracker",
        memory_monitor: Optional["MemoryMonitor"] = None,
        interval: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        self.cache = cache
        self.debouncer = debouncer
        self.tracker = tracker
        self.memory_monitor = memory_monitor
        self.interval = interval
        self._clock = clock
        self._stats = CleanupRunStats()
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the cleanup background task. The first pass runs immediately."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._cleanup_loop(), name="validation-cleanup")
        logger.info("Cleanup scheduler started", interval=self.interval)

    async def stop(self) -> None:
        """Stop the cleanup scheduler; no pass starts after this returns."""
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Cleanup scheduler stopped")

    async def _cleanup_loop(self) -> None:
        """Main cleanup loop - runs at configured interval."""
        while self._running:
            try:
                self._run_cleanup()
            except Exception as e:
                logger.error("Cleanup failed", error=str(e))
            await asyncio.sleep(self.interval)

    def force_cleanup(self) -> int:
        """Run one pass now, outside the timer.

        Returns:
            Total entries reclaimed across all components
        """
        return self._run_cleanup()

    def _run_cleanup(self) -> int:
        """Execute all cleanup tasks."""
        results: Dict[str, int] = {}

        # 1. Expired cache entries (TTL-based)
        try:
            results['cache'] = self.cache.purge_stale()
        except Exception as e:
            logger.warning("Failed to cleanup cache", error=str(e))
            results['cache'] = 0

        # 2. Idle debounce records
        try:
            results['debounce'] = self.debouncer.cleanup()
        except Exception as e:
            logger.warning("Failed to cleanup debounce records", error=str(e))
            results['debounce'] = 0

        # 3. Metrics outside the retention window
        try:
            results['metrics'] = self.tracker.prune()
        except Exception as e:
            logger.warning("Failed to cleanup performance metrics", error=str(e))
            results['metrics'] = 0

        reclaimed = sum(results.values())
        now = self._clock()
        stats = self._stats
        stats.total_runs += 1
        stats.last_run_at = now
        stats.last_run_reclaimed = reclaimed
        stats.cache_entries_cleaned += results['cache']
        stats.debounce_entries_cleaned += results['debounce']
        stats.metrics_entries_cleaned += results['metrics']

        # Only log if something was cleaned up
        if reclaimed > 0:
            logger.info("Cleanup completed", **results)

        # 4. Collect garbage under memory pressure
        if self.memory_monitor is not None:
            try:
                if self.memory_monitor.get_status().status == "critical":
                    logger.warning("Memory usage critical, forcing garbage collection")
                    self.memory_monitor.force_garbage_collection()
            except Exception as e:
                logger.warning("Failed to relieve memory pressure", error=str(e))

        return reclaimed

    def get_stats(self) -> CleanupRunStats:
        stats = self._stats
        next_run_at = None
        if self._running and stats.last_run_at is not None:
            next_run_at = stats.last_run_at + self.interval
        return CleanupRunStats(
            total_runs=stats.total_runs,
            last_run_at=stats.last_run_at,
            last_run_reclaimed=stats.last_run_reclaimed,
            cache_entries_cleaned=stats.cache_entries_cleaned,
            debounce_entries_cleaned=stats.debounce_entries_cleaned,
            metrics_entries_cleaned=stats.metrics_entries_cleaned,
            next_run_at=next_run_at,
            is_running=self._running,
        )
