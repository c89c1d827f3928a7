"""RequestCache: TTL expiry, single-flight de-duplication, failure handling."""

import asyncio

import pytest

from dataflex.cache import CacheEntry, RequestCache


class TestGetSet:

    def test_get_returns_value_before_ttl(self, cache, clock):
        cache.set("k", {"v": 1}, ttl=10)
        clock.advance(9.999)
        assert cache.get("k") == {"v": 1}

    def test_get_returns_none_at_ttl(self, cache, clock):
        cache.set("k", "v", ttl=10)
        clock.advance(10)
        assert cache.get("k") is None

    def test_stale_entry_is_evicted_on_read(self, cache, clock):
        cache.set("k", "v", ttl=1)
        clock.advance(2)
        assert len(cache) == 1
        cache.get("k")
        assert len(cache) == 0

    def test_missing_key(self, cache):
        assert cache.get("nope") is None

    def test_set_overwrites_and_refreshes_timestamp(self, cache, clock):
        cache.set("k", "old", ttl=10)
        clock.advance(8)
        cache.set("k", "new", ttl=10)
        clock.advance(8)
        assert cache.get("k") == "new"

    def test_invalidate(self, cache):
        cache.set("k", "v", ttl=10)
        cache.invalidate("k")
        assert cache.get("k") is None

    def test_invalidate_prefix_only_touches_matching_keys(self, cache):
        cache.set("agent:1:summary", 1, ttl=10)
        cache.set("agent:1:dashboard", 2, ttl=10)
        cache.set("agent:2:summary", 3, ttl=10)
        assert cache.invalidate_prefix("agent:1:") == 2
        assert cache.get("agent:2:summary") == 3
        assert cache.get("agent:1:summary") is None

    def test_clear(self, cache):
        cache.set("a", 1, ttl=10)
        cache.set("b", 2, ttl=10)
        cache.clear()
        assert len(cache) == 0

    def test_stats(self, cache, clock):
        cache.set("k", "v", ttl=10)
        clock.advance(4)
        stats = cache.stats()
        assert stats["cache_size"] == 1
        assert stats["pending_requests"] == 0
        assert stats["entries"] == [{"key": "k", "age": 4.0, "ttl": 10, "valid": True}]


def test_cache_entry_validity():
    entry = CacheEntry(key="k", data=None, timestamp=100.0, ttl=5)
    assert entry.is_valid(104.9)
    assert not entry.is_valid(105.0)


class TestGetOrFetch:

    @pytest.mark.asyncio
    async def test_returns_cached_without_fetching(self, cache):
        cache.set("k", "cached", ttl=10)
        calls = []

        async def fetch():
            calls.append(1)
            return "fresh"

        assert await cache.get_or_fetch("k", fetch, ttl=10) == "cached"
        assert calls == []

    @pytest.mark.asyncio
    async def test_falsy_values_are_cache_hits(self, cache):
        cache.set("zero", 0, ttl=10)
        cache.set("empty", [], ttl=10)

        async def fetch():
            raise AssertionError("should not fetch")

        assert await cache.get_or_fetch("zero", fetch) == 0
        assert await cache.get_or_fetch("empty", fetch) == []

    @pytest.mark.asyncio
    async def test_miss_fetches_and_stores(self, cache, clock):
        async def fetch():
            return {"total": 5}

        assert await cache.get_or_fetch("k", fetch, ttl=30) == {"total": 5}
        assert cache.get("k") == {"total": 5}
        assert cache.pending_count() == 0
        clock.advance(30)
        assert cache.get("k") is None

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(self, cache):
        release = asyncio.Event()
        calls = []

        async def fetch():
            calls.append(1)
            await release.wait()
            return "shared"

        first = asyncio.ensure_future(cache.get_or_fetch("k", fetch, ttl=10))
        second = asyncio.ensure_future(cache.get_or_fetch("k", fetch, ttl=10))
        await asyncio.sleep(0)
        assert cache.pending_count() == 1

        release.set()
        assert await asyncio.gather(first, second) == ["shared", "shared"]
        assert len(calls) == 1
        assert cache.pending_count() == 0

    @pytest.mark.asyncio
    async def test_failed_fetch_is_not_cached(self, cache):
        async def failing():
            raise RuntimeError("db down")

        with pytest.raises(RuntimeError, match="db down"):
            await cache.get_or_fetch("k", failing, ttl=10)

        assert cache.get("k") is None
        assert cache.pending_count() == 0

        calls = []

        async def recovering():
            calls.append(1)
            return "ok"

        assert await cache.get_or_fetch("k", recovering, ttl=10) == "ok"
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_failure_propagates_to_every_waiter(self, cache):
        release = asyncio.Event()

        async def failing():
            await release.wait()
            raise ValueError("bad row")

        waiters = [asyncio.ensure_future(cache.get_or_fetch("k", failing)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*waiters, return_exceptions=True)
        assert all(isinstance(r, ValueError) for r in results)

    @pytest.mark.asyncio
    async def test_invalidate_during_fetch_discards_result(self, cache):
        release = asyncio.Event()

        async def fetch():
            await release.wait()
            return "pre-mutation"

        waiter = asyncio.ensure_future(cache.get_or_fetch("k", fetch, ttl=10))
        await asyncio.sleep(0)
        cache.invalidate("k")
        release.set()

        assert await waiter == "pre-mutation"
        assert cache.get("k") is None

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_shared_fetch(self, cache):
        release = asyncio.Event()

        async def fetch():
            await release.wait()
            return "done"

        first = asyncio.ensure_future(cache.get_or_fetch("k", fetch, ttl=10))
        second = asyncio.ensure_future(cache.get_or_fetch("k", fetch, ttl=10))
        await asyncio.sleep(0)
        first.cancel()
        await asyncio.sleep(0)
        release.set()

        assert await second == "done"
        assert cache.get("k") == "done"

    @pytest.mark.asyncio
    async def test_separate_keys_fetch_independently(self, cache):
        calls = []

        async def fetch_a():
            calls.append("a")
            return "A"

        async def fetch_b():
            calls.append("b")
            return "B"

        assert await asyncio.gather(
            cache.get_or_fetch("a", fetch_a), cache.get_or_fetch("b", fetch_b)
        ) == ["A", "B"]
        assert sorted(calls) == ["a", "b"]


def test_instances_are_isolated():
    one, two = RequestCache(), RequestCache()
    one.set("k", 1, ttl=60)
    assert two.get("k") is None
