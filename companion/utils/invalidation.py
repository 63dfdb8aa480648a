# =============================================
# File: companion/utils/invalidation.py
# Purpose: Targeted cache invalidation after mutations (detail keys, listing families, per-user views)
# =============================================
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Set

from companion.utils import slog
from companion.utils.cache_keys import (
    detail_key,
    listing_prefix,
    user_key,
    user_prefix,
    user_view_prefix,
)
from companion.utils.cache_registry import CacheRegistry
from companion.utils.metrics import record_invalidation
from companion.utils.timed_cache import TimedCache

# Listing kinds per family
POSTS = "posts"
TUTORIALS = "tutorials"
RECOMMENDED_TUTORIALS = "recommended-tutorials"
SESSIONS = "sessions"
MESSAGES = "messages"

# Derived per-user view -> user document fields it is computed from
VIEW_INPUTS: Dict[str, Set[str]] = {
    "content-recommendations": {"preferences", "interests", "goals", "perma_scores"},
    "feedback-history": {"feedback"},
    "learning-goals": {"goals"},
    "badges": {"completed_tutorials", "streak"},
}


def _report(cache: TimedCache[Any], removed: int, reason: str) -> int:
    record_invalidation(cache.name, removed)
    slog.log_event("cache.invalidated", cache=cache.name, reason=reason, removed=removed)
    return removed


def invalidate_prefix(cache: TimedCache[Any], prefix: str) -> int:
    """Delete every key starting with prefix, including fills still in flight."""
    return cache.delete_matching(prefix)


def invalidate_forum_listings(registry: CacheRegistry) -> int:
    # Search results share the listing prefix
    removed = invalidate_prefix(registry.forum, listing_prefix(POSTS))
    return _report(registry.forum, removed, "forum-listings")


def invalidate_post(registry: CacheRegistry, post_id: str, listings: bool = False) -> int:
    """
    Drop a post's detail entry; with listings=True also every forum listing page
    (they embed likes_count / comments_count).
    """
    removed = _report(registry.posts, int(registry.posts.delete(detail_key(POSTS, post_id))), "post-detail")
    if listings:
        removed += invalidate_forum_listings(registry)
    return removed


def invalidate_tutorials(registry: CacheRegistry, tutorial_id: Optional[str] = None) -> int:
    cache = registry.tutorials
    removed = invalidate_prefix(cache, listing_prefix(TUTORIALS))
    removed += invalidate_prefix(cache, listing_prefix(RECOMMENDED_TUTORIALS))
    if tutorial_id is not None:
        removed += int(cache.delete(detail_key(TUTORIALS, tutorial_id)))
    return _report(cache, removed, "tutorials")


def invalidate_user_view(registry: CacheRegistry, user_id: str, view: str) -> int:
    cache = registry.views
    removed = int(cache.delete(user_key(user_id, view)))
    removed += invalidate_prefix(cache, user_view_prefix(user_id, view))
    return _report(cache, removed, f"view:{view}")


def invalidate_user(
    registry: CacheRegistry,
    user_id: str,
    changed_fields: Optional[Iterable[str]] = None,
) -> int:
    """
    Drop the user document and the derived views fed by changed_fields.
    changed_fields=None means "unknown change": every view of that user goes.
    """
    removed = _report(registry.users, invalidate_prefix(registry.users, user_prefix(user_id)), "user")
    if changed_fields is None:
        removed += _report(
            registry.views, invalidate_prefix(registry.views, user_prefix(user_id)), "views:all"
        )
        return removed
    changed = set(changed_fields)
    for view, inputs in VIEW_INPUTS.items():
        if inputs & changed:
            removed += invalidate_user_view(registry, user_id, view)
    return removed


def invalidate_subcollection(registry: CacheRegistry, user_id: str, name: str) -> int:
    return invalidate_user_view(registry, user_id, f"sub-{name}")


def invalidate_sessions(registry: CacheRegistry, user_id: str, session_id: Optional[str] = None) -> int:
    cache = registry.sessions
    removed = int(cache.delete(user_key(user_id, SESSIONS)))
    if session_id is not None:
        removed += int(cache.delete(detail_key(MESSAGES, session_id)))
    return _report(cache, removed, "sessions")


def invalidate_assessment(registry: CacheRegistry, user_id: str) -> int:
    removed = _report(
        registry.assessments,
        int(registry.assessments.delete(user_key(user_id, "latest-assessment"))),
        "assessment",
    )
    # Recommendations are derived from assessment scores
    return removed + invalidate_user_view(registry, user_id, "content-recommendations")
