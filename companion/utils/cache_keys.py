# =============================================
# File: companion/utils/cache_keys.py
# Purpose: Deterministic, collision-free cache keys for listings, details and per-user views
# =============================================
from __future__ import annotations

import hashlib
from typing import Iterable, Mapping, Optional
from urllib.parse import quote

# Components are percent-encoded, so SEP never occurs inside one
SEP = ":"


def _enc(part: object) -> str:
    return quote(str(part), safe="")


def normalize_search(text: Optional[str]) -> str:
    return " ".join((text or "").strip().casefold().split())


def make_key(*parts: object) -> str:
    return SEP.join(_enc(p) for p in parts)


def _filters_part(filters: Mapping[str, Optional[Iterable[str]]]) -> str:
    # Order-insensitive per filter; absent/empty filters encode as "all"
    out = []
    for name in sorted(filters):
        values = sorted({str(v) for v in (filters[name] or [])})
        out.append(f"{_enc(name)}={','.join(_enc(v) for v in values) if values else 'all'}")
    return "&".join(out)


def listing_prefix(kind: str) -> str:
    return make_key(kind, "list") + SEP


def listing_key(
    kind: str,
    sort_field: str,
    sort_direction: str = "desc",
    page: Optional[int] = None,
    cursor: Optional[str] = None,
    search: Optional[str] = None,
    filters: Optional[Mapping[str, Optional[Iterable[str]]]] = None,
    page_size: Optional[int] = None,
) -> str:
    """
    Key for one page of a listing. Offset and cursor pagination are exclusive:
    passing both is an error, passing neither means page 1.
    """
    if page is not None and cursor is not None:
        raise ValueError("page and cursor pagination cannot be combined")
    position = f"after={cursor}" if cursor is not None else f"page={page if page is not None else 1}"
    parts = [kind, "list", f"sort={sort_field}.{sort_direction.lower()}", position]
    if page_size is not None:
        parts.append(f"size={int(page_size)}")
    q = normalize_search(search)
    if q:
        parts.append(f"q={q}")
    if filters:
        parts.append(f"f={_filters_part(filters)}")
    return make_key(*parts)


def detail_key(kind: str, item_id: str) -> str:
    return make_key(kind, "item", item_id)


def user_prefix(user_id: str) -> str:
    return make_key("user", user_id) + SEP


def user_key(user_id: str, view: str, *extra: object) -> str:
    """Per-user key; `view` discriminates derived views (sessions, feedback-history, ...)."""
    return make_key("user", user_id, view, *extra)


def user_view_prefix(user_id: str, view: str) -> str:
    return user_key(user_id, view) + SEP


def response_key(prompt: str, context: Optional[str] = None) -> str:
    norm = normalize_search(prompt)
    if context:
        norm = f"{normalize_search(context)}\x00{norm}"
    return make_key("response", hashlib.sha256(norm.encode("utf-8")).hexdigest())
