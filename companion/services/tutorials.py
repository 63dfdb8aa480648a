# =============================================
# File: companion/services/tutorials.py
# Purpose: Tutorial listings, details and per-user recommendations behind the tutorial cache
# =============================================
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

from loguru import logger
from sqlalchemy import func, or_
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from companion.db.models import Tutorial
from companion.services.errors import NotFoundError
from companion.utils.cache_keys import detail_key, listing_key, make_key, normalize_search
from companion.utils.cache_registry import CacheRegistry
from companion.utils.invalidation import RECOMMENDED_TUTORIALS, TUTORIALS, invalidate_tutorials

SORT_FIELDS = ("created_at", "title", "duration_minutes")
_FIELDS = ("title", "description", "content", "category", "difficulty", "duration_minutes")


def _dump(t: Tutorial) -> Dict[str, Any]:
    return t.model_dump(mode="json")


class TutorialService:
    def __init__(self, engine: Engine, registry: CacheRegistry) -> None:
        self.engine = engine
        self.registry = registry

    async def fetch_tutorials(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        categories: Optional[Iterable[str]] = None,
        difficulties: Optional[Iterable[str]] = None,
        sort_field: str = "created_at",
        sort_direction: str = "desc",
    ) -> Dict[str, Any]:
        if sort_field not in SORT_FIELDS:
            raise ValueError(f"unsupported sort field: {sort_field}")
        if sort_direction not in ("asc", "desc"):
            raise ValueError(f"unsupported sort direction: {sort_direction}")
        cats = sorted(set(categories or []))
        diffs = sorted(set(difficulties or []))
        q = normalize_search(search)
        key = listing_key(
            TUTORIALS,
            sort_field,
            sort_direction,
            page=page,
            page_size=limit,
            search=q,
            filters={"category": cats, "difficulty": diffs},
        )

        async def _fetch() -> Dict[str, Any]:
            sort_col = col(getattr(Tutorial, sort_field))
            with Session(self.engine) as s:
                stmt = select(Tutorial)
                if q:
                    like = f"%{q}%"
                    stmt = stmt.where(
                        or_(func.lower(Tutorial.title).like(like), func.lower(Tutorial.description).like(like))
                    )
                if cats:
                    stmt = stmt.where(col(Tutorial.category).in_(cats))
                if diffs:
                    stmt = stmt.where(col(Tutorial.difficulty).in_(diffs))
                order = sort_col.desc() if sort_direction == "desc" else sort_col.asc()
                stmt = stmt.order_by(order, col(Tutorial.id)).offset(max(0, page - 1) * limit).limit(limit + 1)
                rows = s.exec(stmt).all()
            return {
                "tutorials": [_dump(t) for t in rows[:limit]],
                "page": page,
                "has_more": len(rows) > limit,
            }

        return await self.registry.tutorials.get_or_set(key, _fetch)

    async def fetch_tutorial(self, tutorial_id: str) -> Dict[str, Any]:
        async def _fetch() -> Dict[str, Any]:
            with Session(self.engine) as s:
                t = s.get(Tutorial, tutorial_id)
                if t is None:
                    raise NotFoundError(f"tutorial {tutorial_id} not found")
                return _dump(t)

        return await self.registry.tutorials.get_or_set(detail_key(TUTORIALS, tutorial_id), _fetch)

    async def recommended_tutorials(
        self,
        user_id: str,
        completed_ids: Iterable[str] = (),
        limit: int = 3,
    ) -> List[Dict[str, Any]]:
        """Newest tutorials the user has not completed, preferring categories they already engaged with."""
        done = sorted(set(completed_ids))
        # Listing-style prefix so tutorial writes drop it along with the pages
        key = make_key(RECOMMENDED_TUTORIALS, "list", user_id, ",".join(quote(i, safe="") for i in done), f"limit={limit}")

        async def _fetch() -> List[Dict[str, Any]]:
            with Session(self.engine) as s:
                rows = s.exec(select(Tutorial).order_by(col(Tutorial.created_at).desc())).all()
            seen_categories = {t.category for t in rows if t.id in done}
            fresh = [t for t in rows if t.id not in done]
            # stable sort keeps newest-first inside each group
            fresh.sort(key=lambda t: t.category not in seen_categories)
            return [_dump(t) for t in fresh[:limit]]

        return await self.registry.tutorials.get_or_set(key, _fetch)

    async def create_tutorial(self, **fields: Any) -> Dict[str, Any]:
        tutorial = Tutorial(**{k: v for k, v in fields.items() if k in _FIELDS})
        with Session(self.engine) as s:
            s.add(tutorial)
            s.commit()
            s.refresh(tutorial)
            data = _dump(tutorial)
        invalidate_tutorials(self.registry)
        logger.info(f"[tutorials] created id={data['id']}")
        return data

    async def update_tutorial(self, tutorial_id: str, **updates: Any) -> Dict[str, Any]:
        unknown = set(updates) - set(_FIELDS)
        if unknown:
            raise ValueError(f"cannot update fields: {sorted(unknown)}")
        with Session(self.engine) as s:
            t = s.get(Tutorial, tutorial_id)
            if t is None:
                raise NotFoundError(f"tutorial {tutorial_id} not found")
            for k, v in updates.items():
                setattr(t, k, v)
            t.updated_at = datetime.utcnow()
            s.add(t)
            s.commit()
            s.refresh(t)
            data = _dump(t)
        invalidate_tutorials(self.registry, tutorial_id)
        return data
