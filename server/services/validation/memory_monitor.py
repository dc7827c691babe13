"""Non-blocking process memory monitor.

A background task samples process memory on a fixed interval into a bounded
ring buffer. ``get_status()`` only reads the newest stored reading, so health
checks never wait on a fresh sample.
"""

import asyncio
import gc
import time
from collections import deque
from typing import Callable, Deque, List, Optional

from core.health import ProcessMemory, read_process_memory
from core.logging import get_logger
from .models import MemoryLevel, MemoryReading, MemoryStatus, MemoryTrend

logger = get_logger(__name__)


class MemoryMonitor:
    """Samples memory periodically and classifies it against thresholds."""

    def __init__(
        self,
        max_readings: int = 10,
        check_interval: float = 30.0,
        warning_threshold_mb: float = 400.0,
        critical_threshold_mb: float = 500.0,
        reader: Callable[[], ProcessMemory] = read_process_memory,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize memory monitor.

        Args:
            max_readings: Ring buffer size; oldest reading evicted first
            check_interval: Seconds between samples
            warning_threshold_mb: Resident memory at which status is "warning"
            critical_threshold_mb: Resident memory at which status is "critical"
            reader: Process-memory reading primitive
            clock: Wall-clock source in seconds
        """
        self.max_readings = max_readings
        self.check_interval = check_interval
        self.warning_threshold_mb = warning_threshold_mb
        self.critical_threshold_mb = critical_threshold_mb
        self._reader = reader
        self._clock = clock
        self._readings: Deque[MemoryReading] = deque(maxlen=max_readings)
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Take one reading now, then keep sampling in the background."""
        if self._running:
            return
        self._readings.clear()
        try:
            self.sample()
        except Exception as e:
            logger.error("Memory sample failed", error=str(e))
        self._running = True
        self._task = asyncio.create_task(self._monitor_loop(), name="memory-monitor")
        logger.info("Memory monitor started",
                    interval=self.check_interval,
                    max_readings=self.max_readings)

    async def stop(self) -> None:
        """Stop sampling. Readings stay available until the next start()."""
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
        logger.info("Memory monitor stopped")

    async def _monitor_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.check_interval)
            try:
                self.sample()
            except Exception as e:
                logger.error("Memory sample failed", error=str(e))

    def sample(self) -> MemoryReading:
        """Read process memory now and append it to the buffer."""
        usage = self._reader()
        reading = MemoryReading(
            timestamp=self._clock(),
            heap_used_mb=usage.rss_mb,
            rss_mb=usage.rss_mb,
            vms_mb=usage.vms_mb,
            percent=usage.percent,
        )
        self._readings.append(reading)
        self._check_thresholds(reading)
        return reading

    def _check_thresholds(self, reading: MemoryReading) -> None:
        level = self._classify(reading.heap_used_mb)
        if level == "critical":
            logger.error("Memory usage critical",
                         heap_used_mb=round(reading.heap_used_mb, 2),
                         threshold_mb=self.critical_threshold_mb)
        elif level == "warning":
            logger.warning("Memory usage high",
                           heap_used_mb=round(reading.heap_used_mb, 2),
                           threshold_mb=self.warning_threshold_mb)

    def _classify(self, heap_used_mb: float) -> MemoryLevel:
        if heap_used_mb >= self.critical_threshold_mb:
            return "critical"
        if heap_used_mb >= self.warning_threshold_mb:
            return "warning"
        return "healthy"

    def get_latest_reading(self) -> Optional[MemoryReading]:
        return self._readings[-1] if self._readings else None

    def get_readings(self) -> List[MemoryReading]:
        return list(self._readings)

    def get_trend(self) -> Optional[MemoryTrend]:
        """Compare first-half and second-half averages of the buffer.

        Returns:
            MemoryTrend, or None with fewer than two readings
        """
        values = [r.heap_used_mb for r in self._readings]
        if len(values) < 2:
            return None

        middle = len(values) // 2
        first_half, second_half = values[:middle], values[middle:]
        change_rate = sum(second_half) / len(second_half) - sum(first_half) / len(first_half)

        return MemoryTrend(
            increasing=change_rate > 0,
            average_mb=sum(values) / len(values),
            peak_mb=max(values),
            current_mb=values[-1],
            change_rate=change_rate,
        )

    def get_status(self) -> MemoryStatus:
        latest = self.get_latest_reading()
        if latest is None:
            return MemoryStatus(status="healthy", heap_used_mb=0.0, memory_percent=0.0)

        return MemoryStatus(
            status=self._classify(latest.heap_used_mb),
            heap_used_mb=round(latest.heap_used_mb, 2),
            memory_percent=round(latest.percent, 2),
            trend=self.get_trend(),
        )

    def force_garbage_collection(self) -> int:
        """Run a full collection and record a fresh reading.

        Returns:
            Number of unreachable objects found by the collector
        """
        collected = gc.collect()
        reading = self.sample()
        logger.info("Forced garbage collection",
                    collected=collected,
                    heap_used_mb=round(reading.heap_used_mb, 2))
        return collected
