"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from services.validation import (
    RequestDebouncer,
    ValidationCache,
    PerformanceTracker,
    MemoryMonitor,
    CleanupScheduler,
    ValidationGuard,
)


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Validation optimization layer (process-wide state, one instance each)
    debouncer = providers.Singleton(
        RequestDebouncer,
        min_interval=settings.provided.debounce_min_interval,
        max_violations=settings.provided.debounce_max_violations,
        record_ttl=settings.provided.debounce_record_ttl,
        max_records=settings.provided.debounce_max_records,
    )

    validation_cache = providers.Singleton(
        ValidationCache,
        max_size=settings.provided.cache_max_size,
        ttl=settings.provided.cache_ttl,
        stale_while_revalidate=settings.provided.cache_stale_while_revalidate,
    )

    performance_tracker = providers.Singleton(
        PerformanceTracker,
        retention=settings.provided.metrics_retention,
        max_records=settings.provided.metrics_max_records,
        slow_threshold_ms=settings.provided.metrics_slow_threshold_ms,
    )

    memory_monitor = providers.Singleton(
        MemoryMonitor,
        max_readings=settings.provided.memory_max_readings,
        check_interval=settings.provided.memory_check_interval,
        warning_threshold_mb=settings.provided.memory_warning_mb,
        critical_threshold_mb=settings.provided.memory_critical_mb,
    )

    cleanup_scheduler = providers.Singleton(
        CleanupScheduler,
        cache=validation_cache,
        debouncer=debouncer,
        tracker=performance_tracker,
        memory_monitor=memory_monitor,
        interval=settings.provided.cleanup_interval,
    )

    validation_guard = providers.Singleton(
        ValidationGuard,
        debouncer=debouncer,
        cache=validation_cache,
        tracker=performance_tracker,
    )


# Global container instance
container = Container()
