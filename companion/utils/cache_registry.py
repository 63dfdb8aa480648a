# =============================================
# File: companion/utils/cache_registry.py
# Purpose: One TimedCache per resource family, with env-tunable TTLs
# =============================================
from __future__ import annotations

import os
import time
from typing import Any, Callable, Dict, List, Optional

from companion.utils import slog
from companion.utils.timed_cache import TimedCache

# family -> (env var, default TTL seconds)
FAMILY_TTLS: Dict[str, tuple[str, float]] = {
    "forum": ("CACHE_TTL_FORUM_SECONDS", 300),
    "posts": ("CACHE_TTL_POST_SECONDS", 120),
    "tutorials": ("CACHE_TTL_TUTORIAL_SECONDS", 1800),
    "sessions": ("CACHE_TTL_SESSION_SECONDS", 300),
    "responses": ("CACHE_TTL_RESPONSE_SECONDS", 3600),
    "users": ("CACHE_TTL_USER_SECONDS", 600),
    "assessments": ("CACHE_TTL_ASSESSMENT_SECONDS", 3600),
    "views": ("CACHE_TTL_VIEW_SECONDS", 300),
}

# family -> (env var, default max entries); enforced by maintain() and after AI reply fills
FAMILY_MAX_ENTRIES: Dict[str, tuple[str, int]] = {
    "forum": ("CACHE_FORUM_MAX_ENTRIES", 50),
    "posts": ("CACHE_POST_MAX_ENTRIES", 50),
    "tutorials": ("CACHE_TUTORIAL_MAX_ENTRIES", 100),
    "sessions": ("CACHE_SESSION_MAX_ENTRIES", 20),
    "responses": ("CACHE_RESPONSE_MAX_ENTRIES", 500),
    "users": ("CACHE_USER_MAX_ENTRIES", 200),
    "assessments": ("CACHE_ASSESSMENT_MAX_ENTRIES", 10),
    "views": ("CACHE_VIEW_MAX_ENTRIES", 200),
}

# Families whose cached payloads are handed to callers that may mutate them
_CLONED = {"forum", "posts", "users"}


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return float(default)


def _get_max_entries() -> Dict[str, int]:
    """Read limits at call time so tests/env overrides take effect."""
    return {name: int(os.getenv(env, str(default))) for name, (env, default) in FAMILY_MAX_ENTRIES.items()}


def _get_response_evict_batch() -> int:
    return int(os.getenv("CACHE_RESPONSE_EVICT_BATCH", "100"))


class CacheRegistry:
    """
    Fixed set of named caches, one per resource family.
    Tenancy lives in the keys; families never share an instance.
    Every family has a size ceiling; only responses evict an extra batch below it.
    """

    def __init__(
        self,
        ttls: Optional[Dict[str, float]] = None,
        limits: Optional[Dict[str, int]] = None,
        response_limits: Optional[tuple[int, int]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        ttls = ttls or {}
        max_entries = {**_get_max_entries(), **(limits or {})}
        evict_batch = _get_response_evict_batch()
        if response_limits is not None:
            max_entries["responses"], evict_batch = response_limits
        self._caches: Dict[str, TimedCache[Any]] = {}
        for name, (_, default) in FAMILY_TTLS.items():
            self._caches[name] = TimedCache(
                name=name,
                default_ttl=ttls.get(name, default),
                max_entries=max_entries[name],
                evict_batch=evict_batch if name == "responses" else 0,
                clone=name in _CLONED,
                clock=clock,
            )

    @property
    def forum(self) -> TimedCache[Dict[str, Any]]:
        return self._caches["forum"]

    @property
    def posts(self) -> TimedCache[Dict[str, Any]]:
        return self._caches["posts"]

    @property
    def tutorials(self) -> TimedCache[Any]:
        return self._caches["tutorials"]

    @property
    def sessions(self) -> TimedCache[List[Dict[str, Any]]]:
        return self._caches["sessions"]

    @property
    def responses(self) -> TimedCache[str]:
        return self._caches["responses"]

    @property
    def users(self) -> TimedCache[Dict[str, Any]]:
        return self._caches["users"]

    @property
    def assessments(self) -> TimedCache[Optional[Dict[str, Any]]]:
        return self._caches["assessments"]

    @property
    def views(self) -> TimedCache[Any]:
        return self._caches["views"]

    def get(self, name: str) -> TimedCache[Any]:
        return self._caches[name]

    def names(self) -> List[str]:
        return list(self._caches)

    def maintain(self) -> Dict[str, int]:
        """Scheduled sweep: drop expired entries, then enforce size ceilings."""
        removed: Dict[str, int] = {}
        for name, cache in self._caches.items():
            n = cache.cleanup() + cache.enforce_size()
            if n:
                removed[name] = n
        if removed:
            slog.log_event("cache.maintenance", removed=removed, total=sum(removed.values()))
        return removed

    def clear(self) -> None:
        for cache in self._caches.values():
            cache.clear()

    def stats(self) -> Dict[str, Dict[str, Any]]:
        return {name: cache.stats() for name, cache in self._caches.items()}


def build_registry(clock: Callable[[], float] = time.time) -> CacheRegistry:
    ttls = {name: _env_float(env, default) for name, (env, default) in FAMILY_TTLS.items()}
    return CacheRegistry(ttls=ttls, clock=clock)
