"""
DataFlex — Request Cache
─────────────────────────
In-memory read-through cache with single-flight de-duplication.

  get(key)                          → data or None (stale entries evicted)
  set(key, data, ttl)               → unconditional overwrite
  await get_or_fetch(key, fn, ttl)  → cached data, or the in-flight fetch
                                      for this key, or a new fetch
  invalidate(key) / invalidate_prefix(prefix) / clear()

Expiry is lazy and TTL-only: there is no size bound and no LRU, so this
is only for small, short-lived views (dashboards, summaries).

Concurrency: one asyncio event loop. The check-then-register of a
pending fetch happens in a single synchronous step, so concurrent
callers for the same key always share one underlying fetch.
Failed fetches are never cached and never retried here.

Create one instance per application (see app.py lifespan) and hand it
to whoever needs it. There is no module-level singleton.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from dataflex.cache.ttl_config import DEFAULT_TTL

log = logging.getLogger("dfx.cache")

_MISSING = object()


@dataclass
class CacheEntry:
    key:       str
    data:      Any
    timestamp: float   # clock() at creation
    ttl:       float   # seconds

    def is_valid(self, now: float) -> bool:
        return now - self.timestamp < self.ttl

    def age(self, now: float) -> float:
        return now - self.timestamp


class RequestCache:

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock   = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._pending: Dict[str, "asyncio.Task[Any]"] = {}

    # ── Plain cache ───────────────────────────────────────────

    def _lookup(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        if entry.is_valid(self._clock()):
            log.debug(f"Cache hit for key: {key}")
            return entry.data
        del self._entries[key]
        log.debug(f"Cache expired for key: {key}")
        return _MISSING

    def get(self, key: str) -> Optional[Any]:
        data = self._lookup(key)
        return None if data is _MISSING else data

    def set(self, key: str, data: Any, ttl: float = DEFAULT_TTL) -> None:
        self._entries[key] = CacheEntry(key=key, data=data, timestamp=self._clock(), ttl=ttl)
        log.debug(f"Cache set for key: {key}, TTL: {ttl}s")

    # ── Read-through with single-flight ───────────────────────

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
        ttl: float = DEFAULT_TTL,
    ) -> Any:
        cached = self._lookup(key)
        if cached is not _MISSING:
            return cached

        pending = self._pending.get(key)
        if pending is not None and not pending.done():
            log.debug(f"Request already pending for key: {key}, joining it")
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(self._fetch_and_store(key, fetch_fn, ttl))
        self._pending[key] = task
        task.add_done_callback(lambda t: self._settle(key, t))
        # Shielded: one waiter being cancelled must not cancel the fetch
        # the other waiters are sharing.
        return await asyncio.shield(task)

    async def _fetch_and_store(self, key: str, fetch_fn: Callable[[], Awaitable[Any]], ttl: float) -> Any:
        data = await fetch_fn()
        # Only store if nobody invalidated this key while we were fetching.
        if self._pending.get(key) is asyncio.current_task():
            self.set(key, data, ttl)
        return data

    def _settle(self, key: str, task: "asyncio.Task[Any]") -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.warning(f"Fetch failed for key: {key}: {exc}")

    # ── Eviction ──────────────────────────────────────────────

    def invalidate(self, key: str) -> None:
        """Drop the entry and detach any in-flight fetch so its result is not stored."""
        self._entries.pop(key, None)
        self._pending.pop(key, None)
        log.debug(f"Cache invalidated for key: {key}")

    def invalidate_prefix(self, prefix: str) -> int:
        keys = [k for k in self._entries if k.startswith(prefix)]
        keys += [k for k in self._pending if k.startswith(prefix) and k not in keys]
        for k in keys:
            self.invalidate(k)
        log.info(f"Cache invalidated {len(keys)} keys with prefix: {prefix}")
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()
        self._pending.clear()
        log.info("All cache cleared")

    # ── Introspection ─────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._entries)

    def pending_count(self) -> int:
        return len(self._pending)

    def stats(self) -> dict:
        now = self._clock()
        return {
            "cache_size":       len(self._entries),
            "pending_requests": len(self._pending),
            "entries": [
                {"key": e.key, "age": round(e.age(now), 3), "ttl": e.ttl, "valid": e.is_valid(now)}
                for e in self._entries.values()
            ],
        }
