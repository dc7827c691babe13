"""Validation layer diagnostics routes.

Read-only introspection plus the few operator actions the layer supports:
reset a caller, clear the cache, clear metrics, force a cleanup pass.
"""

from fastapi import APIRouter, Depends

from core.container import container
from core.logging import get_logger
from services.validation import (
    CleanupScheduler,
    MemoryMonitor,
    PerformanceTracker,
    RequestDebouncer,
    ValidationCache,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/api/validation", tags=["validation"])


def _performance_summary(tracker: PerformanceTracker) -> dict:
    by_operation = {}
    for operation in tracker.get_operation_types():
        stats = tracker.get_stats(operation)
        by_operation[operation] = stats.to_dict() if stats else None

    return {
        "by_operation": by_operation,
        "slow_operations": [m.to_dict() for m in tracker.get_slow_operations(500)],
    }


@router.get("/stats")
async def get_validation_stats(
    memory_monitor: MemoryMonitor = Depends(lambda: container.memory_monitor()),
    cache: ValidationCache = Depends(lambda: container.validation_cache()),
    debouncer: RequestDebouncer = Depends(lambda: container.debouncer()),
    tracker: PerformanceTracker = Depends(lambda: container.performance_tracker()),
    scheduler: CleanupScheduler = Depends(lambda: container.cleanup_scheduler()),
):
    """All component statistics in one response."""
    try:
        return {
            "success": True,
            "stats": {
                "memory": {
                    "current": memory_monitor.get_status().to_dict(),
                    "history": [r.to_dict() for r in memory_monitor.get_readings()],
                },
                "cache": cache.get_stats().to_dict(),
                "debounce": debouncer.get_stats().to_dict(),
                "performance": _performance_summary(tracker),
                "cleanup": scheduler.get_stats().to_dict(),
            },
        }
    except Exception as e:
        logger.error("Failed to get validation stats", error=str(e))
        return {"success": False, "error": str(e)}


@router.get("/memory")
async def get_memory_status(
    memory_monitor: MemoryMonitor = Depends(lambda: container.memory_monitor()),
):
    """Latest memory status, trend and reading history."""
    trend = memory_monitor.get_trend()
    return {
        "success": True,
        "status": memory_monitor.get_status().to_dict(),
        "trend": trend.to_dict() if trend else None,
        "readings": [r.to_dict() for r in memory_monitor.get_readings()],
    }


@router.post("/cleanup")
async def force_cleanup(
    scheduler: CleanupScheduler = Depends(lambda: container.cleanup_scheduler()),
):
    """Run a cleanup pass now."""
    reclaimed = scheduler.force_cleanup()
    logger.info("Manual cleanup triggered", reclaimed=reclaimed)
    return {
        "success": True,
        "reclaimed": reclaimed,
        "stats": scheduler.get_stats().to_dict(),
    }


@router.delete("/debounce/{caller_id}")
async def reset_caller(
    caller_id: str,
    debouncer: RequestDebouncer = Depends(lambda: container.debouncer()),
):
    """Clear a caller's debounce state, lifting any lockout."""
    debouncer.reset_user(caller_id)
    logger.info("Debounce state reset", caller_id=caller_id)
    return {"success": True, "caller_id": caller_id}


@router.delete("/cache")
async def clear_cache(
    cache: ValidationCache = Depends(lambda: container.validation_cache()),
):
    """Drop every cached validation result."""
    cleared = len(cache)
    cache.clear()
    return {"success": True, "cleared": cleared}


@router.delete("/metrics")
async def clear_metrics(
    tracker: PerformanceTracker = Depends(lambda: container.performance_tracker()),
):
    """Discard all recorded performance metrics."""
    tracker.clear_metrics()
    return {"success": True}
