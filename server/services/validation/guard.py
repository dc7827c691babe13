"""Protected execution of an expensive validation operation.

Debounce check, then cached single-flight fetch, timed by the performance
tracker. Rate limiting comes back as a GuardResult; upstream errors propagate.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

from core.logging import get_logger
from .cache import ValidationCache
from .debounce import RequestDebouncer
from .models import GuardResult
from .performance import PerformanceTracker

logger = get_logger(__name__)

T = TypeVar("T")


class ValidationGuard:
    """Wraps an operation so callers are rate limited and results shared."""

    def __init__(
        self,
        debouncer: RequestDebouncer,
        cache: ValidationCache,
        tracker: PerformanceTracker,
    ):
        self.debouncer = debouncer
        self.cache = cache
        self.tracker = tracker

    async def run(
        self,
        caller_id: str,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        operation: str = "validation",
        bypass_cache: bool = False,
    ) -> GuardResult[T]:
        """Run ``fetcher`` for ``caller_id`` through every protection.

        Args:
            caller_id: Stable identity used for debouncing
            key: Cache key for the result
            fetcher: The expensive operation
            operation: Metric name for timing
            bypass_cache: Force a fresh computation

        Returns:
            GuardResult with ``allowed=False`` when the caller was debounced
        """
        decision = self.debouncer.should_allow_request(caller_id)
        if not decision.allowed:
            logger.debug("Request debounced",
                         caller_id=caller_id,
                         reason=decision.reason,
                         wait_ms=decision.wait_ms)
            return GuardResult(
                allowed=False,
                reason=decision.reason,
                wait_ms=decision.wait_ms,
                violations=decision.violations,
            )

        end = self.tracker.start_operation(operation)
        try:
            value, cached = await self.cache.resolve(key, fetcher, bypass_cache=bypass_cache)
        except asyncio.CancelledError:
            end(False, {"cached": False, "cancelled": True})
            raise
        except Exception:
            end(False, {"cached": False})
            raise
        end(True, {"cached": cached})
        return GuardResult(allowed=True, value=value, cached=cached)
