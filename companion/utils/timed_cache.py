# =============================================
# File: companion/utils/timed_cache.py
# Purpose: Generic in-process TTL cache with read-through fill and explicit eviction sweeps
# =============================================
from __future__ import annotations

import asyncio
import copy
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from companion.utils import slog
from companion.utils.timing import timer

T = TypeVar("T")


class FillAborted(Exception):
    """The task running a shared fill was cancelled; waiters start a fresh fill."""


@dataclass
class CacheEntry(Generic[T]):
    value: T
    stored_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.stored_at < self.ttl


class TimedCache(Generic[T]):
    """
    Per-key expiring store for one resource family.

    - get/set/delete/keys never suspend; only get_or_set awaits (the producer).
    - Expired entries read as absent and are dropped when touched.
    - Size eviction is explicit (enforce_size), never triggered by set().
    - With single_flight=True concurrent misses on one key share a single producer call.
    """

    def __init__(
        self,
        name: str = "cache",
        default_ttl: float = 300.0,
        max_entries: Optional[int] = None,
        evict_batch: int = 0,
        single_flight: bool = True,
        clone: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.name = name
        self.default_ttl = float(default_ttl)
        self.max_entries = max_entries
        self.evict_batch = max(0, int(evict_batch))
        self.single_flight = single_flight
        self._clone = clone
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._inflight: Dict[str, "asyncio.Future[T]"] = {}
        self._stats: Dict[str, int] = {"hits": 0, "misses": 0, "fills": 0, "evictions": 0, "expired": 0}

    # ---------- internals ----------

    def _copy(self, value: T) -> T:
        return copy.deepcopy(value) if self._clone else value

    def _lookup(self, key: str) -> Optional[CacheEntry[T]]:
        entry = self._entries.get(key)
        if entry is not None and not entry.is_valid(self._clock()):
            self._entries.pop(key, None)
            self._stats["expired"] += 1
            entry = None
        self._stats["hits" if entry is not None else "misses"] += 1
        return entry

    def _release(self, key: str, fut: "asyncio.Future[T]") -> bool:
        """Detach fut from the in-flight table; False when a delete() already detached it."""
        if self._inflight.get(key) is fut:
            del self._inflight[key]
            return True
        return False

    # ---------- public API ----------

    def get(self, key: str) -> Optional[T]:
        entry = self._lookup(key)
        return self._copy(entry.value) if entry is not None else None

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        self._entries[key] = CacheEntry(
            value=self._copy(value),
            stored_at=self._clock(),
            ttl=float(ttl) if ttl is not None else self.default_ttl,
        )

    def delete(self, key: str) -> bool:
        # A fill started before the delete must not repopulate the key
        self._inflight.pop(key, None)
        return self._entries.pop(key, None) is not None

    async def get_or_set(
        self,
        key: str,
        producer: Callable[[], Awaitable[T]],
        ttl: Optional[float] = None,
    ) -> T:
        entry = self._lookup(key)
        if entry is not None:
            return self._copy(entry.value)

        fut: Optional["asyncio.Future[T]"] = None
        if self.single_flight:
            pending = self._inflight.get(key)
            if pending is not None:
                try:
                    return self._copy(await asyncio.shield(pending))
                except FillAborted:
                    # only the owner was cancelled, not this caller
                    return await self.get_or_set(key, producer, ttl)
            fut = asyncio.get_running_loop().create_future()
            self._inflight[key] = fut

        with timer() as elapsed:
            try:
                value = await producer()
            except asyncio.CancelledError:
                if fut is not None:
                    self._release(key, fut)
                    fut.set_exception(FillAborted(key))
                    fut.exception()
                raise
            except Exception as exc:
                if fut is not None:
                    self._release(key, fut)
                    fut.set_exception(exc)
                    fut.exception()  # waiters re-raise it; silence "never retrieved"
                raise

        store = True
        if fut is not None:
            store = self._release(key, fut)
            fut.set_result(value)
        if store:
            self.set(key, value, ttl)
        self._stats["fills"] += 1
        slog.log_event(
            "cache.fill",
            cache=self.name,
            key=slog.qhash(key),
            stored=store,
            latency_ms=elapsed(),
        )
        return value

    def delete_matching(self, prefix: str) -> int:
        """
        Delete every stored key starting with prefix and detach matching in-flight
        fills so they cannot store afterwards. Returns how many stored entries went.
        """
        for k in [k for k in self._inflight if k.startswith(prefix)]:
            del self._inflight[k]
        doomed = [k for k in self._entries if k.startswith(prefix)]
        for k in doomed:
            del self._entries[k]
        return len(doomed)

    def keys(self) -> List[str]:
        return list(self._entries)

    def cleanup(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        dead = [k for k, e in self._entries.items() if not e.is_valid(now)]
        for k in dead:
            del self._entries[k]
        self._stats["expired"] += len(dead)
        return len(dead)

    def enforce_size(self) -> int:
        """
        Evict oldest-stored entries once the ceiling is exceeded, down to
        max_entries - evict_batch. Ties keep insertion order.
        """
        if self.max_entries is None or len(self._entries) <= self.max_entries:
            return 0
        target = max(0, self.max_entries - self.evict_batch)
        excess = len(self._entries) - target
        oldest = sorted(self._entries.items(), key=lambda kv: kv[1].stored_at)[:excess]
        for k, _ in oldest:
            del self._entries[k]
        self._stats["evictions"] += len(oldest)
        slog.log_event("cache.evicted", cache=self.name, removed=len(oldest), size=len(self._entries))
        return len(oldest)

    def clear(self) -> None:
        self._entries.clear()
        self._inflight.clear()

    def stats(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self._stats)
        out["size"] = len(self._entries)
        out["default_ttl"] = self.default_ttl
        out["max_entries"] = self.max_entries
        return out

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and entry.is_valid(self._clock())
