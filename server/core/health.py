"""Health check utilities for daemon monitoring.

Provides uptime tracking, the process-memory reading primitive used by the
memory monitor, and the aggregated status served by the /health endpoint.
"""
import time
from dataclasses import dataclass
from typing import Dict, Any, TYPE_CHECKING

import psutil

if TYPE_CHECKING:
    from services.validation.memory_monitor import MemoryMonitor
    from services.validation.cleanup import CleanupScheduler

BYTES_PER_MB = 1024 * 1024

# Module-level startup time tracking
_startup_time: float = 0.0


@dataclass(frozen=True)
class ProcessMemory:
    """Raw memory figures for the current process, in megabytes."""
    rss_mb: float
    vms_mb: float
    percent: float


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


def read_process_memory() -> ProcessMemory:
    """Read current process memory usage via psutil."""
    process = psutil.Process()
    info = process.memory_info()
    return ProcessMemory(
        rss_mb=info.rss / BYTES_PER_MB,
        vms_mb=info.vms / BYTES_PER_MB,
        percent=process.memory_percent(),
    )


def get_health_status(
    memory_monitor: "MemoryMonitor",
    cleanup_scheduler: "CleanupScheduler",
) -> Dict[str, Any]:
    """Get health status for /health endpoint.

    Only reads state the background tasks already computed, so it never blocks.
    """
    memory = memory_monitor.get_status()
    overall_status = "healthy" if memory.status != "critical" else "degraded"

    return {
        "status": overall_status,
        "uptime_seconds": round(get_uptime(), 1),
        "memory": memory.to_dict(),
        "background": {
            "memory_monitor": memory_monitor.is_running,
            "cleanup_scheduler": cleanup_scheduler.is_running,
        },
    }
