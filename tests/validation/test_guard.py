import asyncio

import pytest

from services.validation import (
    PerformanceTracker,
    RequestDebouncer,
    ValidationCache,
    ValidationGuard,
)


@pytest.fixture
def guard(clock):
    return ValidationGuard(
        debouncer=RequestDebouncer(min_interval=0.1, max_violations=3, clock=clock),
        cache=ValidationCache(max_size=10, ttl=60, clock=clock),
        tracker=PerformanceTracker(clock=clock),
    )


class Validator:
    def __init__(self, error: Exception = None):
        self.calls = 0
        self.error = error

    async def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return {"overall": "valid"}


@pytest.mark.asyncio
async def test_second_call_served_from_cache(guard, clock):
    validator = Validator()

    first = await guard.run("user-1", "config:abc", validator)
    clock.advance(0.2)
    second = await guard.run("user-1", "config:abc", validator)

    assert first.allowed and second.allowed
    assert first.cached is False
    assert second.cached is True
    assert second.value is first.value
    assert validator.calls == 1

    stats = guard.tracker.get_stats("validation")
    assert stats.total_operations == 2
    assert stats.cache_hit_rate == 50
    assert stats.success_rate == 100


@pytest.mark.asyncio
async def test_debounced_call_skips_fetcher(guard):
    validator = Validator()
    await guard.run("user-1", "config:abc", validator)

    result = await guard.run("user-1", "config:xyz", validator)

    assert result.allowed is False
    assert result.value is None
    assert result.wait_ms is not None
    assert result.violations == 1
    assert validator.calls == 1
    assert guard.tracker.get_stats("validation").total_operations == 1


@pytest.mark.asyncio
async def test_bypass_cache_refetches(guard, clock):
    validator = Validator()
    await guard.run("user-1", "k", validator)
    clock.advance(0.2)

    result = await guard.run("user-1", "k", validator, bypass_cache=True)
    assert result.cached is False
    assert validator.calls == 2


@pytest.mark.asyncio
async def test_failure_recorded_and_reraised(guard):
    validator = Validator(error=ConnectionError("validator unreachable"))

    with pytest.raises(ConnectionError):
        await guard.run("user-1", "k", validator, operation="remote-validate")

    stats = guard.tracker.get_stats("remote-validate")
    assert stats.success_rate == 0
    assert not guard.cache.has("k")


@pytest.mark.asyncio
async def test_stale_value_reported_as_cached(clock):
    cache = ValidationCache(max_size=10, ttl=0.1, stale_while_revalidate=True, clock=clock)
    guard = ValidationGuard(
        debouncer=RequestDebouncer(min_interval=0.1, clock=clock),
        cache=cache,
        tracker=PerformanceTracker(clock=clock),
    )
    validator = Validator()

    await guard.run("user-1", "k", validator)
    clock.advance(0.2)
    result = await guard.run("user-1", "k", validator)

    while cache.get_stats().in_flight:
        await asyncio.sleep(0.01)

    assert result.cached is True
    assert guard.tracker.get_stats("validation").cache_hit_rate == 50
    assert cache.get_stats().hits == 1


@pytest.mark.asyncio
async def test_cancelled_call_closes_span(guard):
    started = asyncio.Event()

    async def slow():
        started.set()
        await asyncio.sleep(0.05)

    task = asyncio.create_task(guard.run("user-1", "k", slow))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    stats = guard.tracker.get_stats("validation")
    assert stats.total_operations == 1
    assert stats.success_rate == 0

    # The shared fetch still completes for later callers
    while guard.cache.get_stats().in_flight:
        await asyncio.sleep(0.01)
    assert guard.cache.has("k")


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_fetch(guard):
    calls = {"n": 0}

    async def validator():
        calls["n"] += 1
        await asyncio.sleep(0.02)
        return {"overall": "valid"}

    results = await asyncio.gather(*[
        guard.run(f"user-{i}", "config:abc", validator) for i in range(5)
    ])

    assert calls["n"] == 1
    assert all(r.allowed for r in results)
    assert all(r.value is results[0].value for r in results)
    assert all(r.cached is False for r in results)
    assert guard.cache.get_stats().coalesced == 4
