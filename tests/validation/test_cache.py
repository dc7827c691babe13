import asyncio

import pytest

from services.validation.cache import ValidationCache


@pytest.fixture
def cache(clock):
    return ValidationCache(max_size=3, ttl=0.1, clock=clock)


class CountingFetcher:
    """Async fetcher that records invocations and returns a fresh object each time."""

    def __init__(self, delay: float = 0.0, error: Exception = None):
        self.calls = 0
        self.delay = delay
        self.error = error

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return {"overall": "valid", "call": self.calls}


# =============================================================================
# Basic operations
# =============================================================================

def test_set_get_has_delete(cache):
    cache.set("k", {"data": 1})
    assert cache.get("k") == {"data": 1}
    assert cache.has("k")

    assert cache.delete("k") is True
    assert cache.get("k") is None
    assert cache.has("k") is False
    assert cache.delete("k") is False


def test_clear(cache):
    cache.set("a", 1)
    cache.set("b", 2)
    cache.clear()
    assert len(cache) == 0
    assert cache.get("a") is None


def test_entries_expire_after_ttl(cache, clock):
    cache.set("k", "v")
    clock.advance(0.15)
    assert cache.has("k") is False
    assert cache.is_stale("k") is True
    assert cache.get("k") is None


def test_cleanup_removes_expired_entries(cache, clock):
    cache.set("a", 1)
    cache.set("b", 2)
    clock.advance(0.15)
    assert cache.cleanup() == 2
    assert len(cache) == 0


def test_purge_leaves_fresh_entries(cache, clock):
    cache.set("old", 1)
    clock.advance(0.06)
    cache.set("new", 2)
    clock.advance(0.06)

    assert cache.purge_stale() == 1
    assert cache.has("new")
    assert not cache.has("old")
    assert cache.get_stats().expirations == 1


def test_lru_eviction(cache):
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    cache.get("a")          # a becomes most recently used
    cache.set("d", 4)

    assert cache.has("a")
    assert not cache.has("b")
    assert cache.get_stats().evictions == 1
    assert len(cache) == 3


def test_get_counts_hits_and_misses(cache):
    cache.set("a", 1)
    cache.get("a")
    cache.get("missing")

    stats = cache.get_stats()
    assert stats.hits == 1
    assert stats.misses == 1
    assert stats.hit_rate == 50.0


def test_rejects_zero_capacity():
    with pytest.raises(ValueError):
        ValidationCache(max_size=0)


# =============================================================================
# get_or_fetch
# =============================================================================

@pytest.mark.asyncio
async def test_concurrent_fetches_coalesce(cache):
    fetcher = CountingFetcher(delay=0.05)

    results = await asyncio.gather(*[cache.get_or_fetch("k", fetcher) for _ in range(10)])

    assert fetcher.calls == 1
    assert all(r is results[0] for r in results)
    stats = cache.get_stats()
    assert stats.misses == 1
    assert stats.coalesced == 9
    assert stats.in_flight == 0


@pytest.mark.asyncio
async def test_hit_skips_fetcher_and_miss_counter(cache):
    fetcher = CountingFetcher()
    first = await cache.get_or_fetch("k", fetcher)
    second = await cache.get_or_fetch("k", fetcher)

    assert fetcher.calls == 1
    assert second is first
    stats = cache.get_stats()
    assert stats.hits == 1
    assert stats.misses == 1


@pytest.mark.asyncio
async def test_bypass_cache_fetches_fresh_value(cache):
    fetcher = CountingFetcher()
    await cache.get_or_fetch("k", fetcher)
    fresh = await cache.get_or_fetch("k", fetcher, bypass_cache=True)

    assert fetcher.calls == 2
    assert fresh["call"] == 2
    assert cache.get("k")["call"] == 2


@pytest.mark.asyncio
async def test_expired_entry_is_refetched(cache, clock):
    fetcher = CountingFetcher()
    await cache.get_or_fetch("k", fetcher)
    clock.advance(0.2)
    value = await cache.get_or_fetch("k", fetcher)

    assert fetcher.calls == 2
    assert value["call"] == 2


@pytest.mark.asyncio
async def test_failure_propagates_to_all_waiters_and_is_not_cached(cache):
    failing = CountingFetcher(delay=0.02, error=RuntimeError("upstream down"))

    results = await asyncio.gather(
        cache.get_or_fetch("k", failing),
        cache.get_or_fetch("k", failing),
        return_exceptions=True,
    )

    assert failing.calls == 1
    assert all(isinstance(r, RuntimeError) for r in results)
    assert results[0] is results[1]
    assert not cache.has("k")
    assert cache.get_stats().in_flight == 0

    ok = CountingFetcher()
    assert (await cache.get_or_fetch("k", ok))["overall"] == "valid"
    assert ok.calls == 1


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_fetch(cache):
    fetcher = CountingFetcher(delay=0.05)
    first = asyncio.create_task(cache.get_or_fetch("k", fetcher))
    second = asyncio.create_task(cache.get_or_fetch("k", fetcher))
    await asyncio.sleep(0.01)

    first.cancel()
    value = await second

    assert fetcher.calls == 1
    assert value["call"] == 1
    assert cache.has("k")
    with pytest.raises(asyncio.CancelledError):
        await first


@pytest.mark.asyncio
async def test_different_keys_fetch_independently(cache):
    fetcher = CountingFetcher(delay=0.01)
    await asyncio.gather(cache.get_or_fetch("a", fetcher), cache.get_or_fetch("b", fetcher))
    assert fetcher.calls == 2


@pytest.mark.asyncio
async def test_stale_while_revalidate_serves_stale_then_refreshes(clock):
    cache = ValidationCache(max_size=3, ttl=0.1, stale_while_revalidate=True, clock=clock)
    fetcher = CountingFetcher()
    await cache.get_or_fetch("k", fetcher)

    clock.advance(0.2)
    stale = await cache.get_or_fetch("k", fetcher)
    assert stale["call"] == 1

    for _ in range(50):
        if cache.get_stats().in_flight == 0:
            break
        await asyncio.sleep(0.01)

    assert fetcher.calls == 2
    assert cache.get("k")["call"] == 2


@pytest.mark.asyncio
async def test_stale_while_revalidate_refresh_failure_keeps_stale_value(clock):
    cache = ValidationCache(max_size=3, ttl=0.1, stale_while_revalidate=True, clock=clock)
    await cache.get_or_fetch("k", CountingFetcher())

    clock.advance(0.2)
    failing = CountingFetcher(error=RuntimeError("boom"))
    stale = await cache.get_or_fetch("k", failing)
    for _ in range(50):
        if cache.get_stats().in_flight == 0:
            break
        await asyncio.sleep(0.01)

    assert stale["call"] == 1
    assert failing.calls == 1
    assert cache.is_stale("k")


@pytest.mark.asyncio
async def test_resolve_reports_cache_hits(cache):
    fetcher = CountingFetcher()

    value, cached = await cache.resolve("k", fetcher)
    assert cached is False
    again, cached = await cache.resolve("k", fetcher)
    assert cached is True
    assert again is value

    _, cached = await cache.resolve("k", fetcher, bypass_cache=True)
    assert cached is False
