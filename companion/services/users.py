# =============================================
# File: companion/services/users.py
# Purpose: User documents and per-user derived views behind the user/view caches
# =============================================
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from loguru import logger
from sqlalchemy.engine import Engine
from sqlmodel import Session

from companion.db.models import UserProfile
from companion.services.errors import NotFoundError
from companion.utils.cache_keys import user_key
from companion.utils.cache_registry import CacheRegistry
from companion.utils.invalidation import invalidate_subcollection, invalidate_user

T = TypeVar("T")

# API field -> (column, stored as JSON)
_FIELDS: Dict[str, tuple[str, bool]] = {
    "display_name": ("display_name", False),
    "email": ("email", False),
    "preferences": ("preferences_json", True),
    "interests": ("interests_json", True),
    "goals": ("goals_json", True),
}


def _to_doc(p: UserProfile) -> Dict[str, Any]:
    return {
        "id": p.id,
        "display_name": p.display_name,
        "email": p.email,
        "preferences": json.loads(p.preferences_json or "{}"),
        "interests": json.loads(p.interests_json or "[]"),
        "goals": json.loads(p.goals_json or "[]"),
        "created_at": p.created_at.isoformat(),
        "updated_at": p.updated_at.isoformat(),
    }


class UserService:
    def __init__(self, engine: Engine, registry: CacheRegistry) -> None:
        self.engine = engine
        self.registry = registry

    async def get_user(self, user_id: str) -> Dict[str, Any]:
        async def _fetch() -> Dict[str, Any]:
            with Session(self.engine) as s:
                p = s.get(UserProfile, user_id)
                if p is None:
                    raise NotFoundError(f"user {user_id} not found")
                return _to_doc(p)

        return await self.registry.users.get_or_set(user_key(user_id, "profile"), _fetch)

    async def update_user(self, user_id: str, fields: Dict[str, Any], create: bool = False) -> Dict[str, Any]:
        """
        Patch the user document. Only views computed from the changed fields
        are invalidated; the rest stay warm.
        """
        unknown = set(fields) - set(_FIELDS)
        if unknown:
            raise ValueError(f"cannot update fields: {sorted(unknown)}")
        with Session(self.engine) as s:
            p = s.get(UserProfile, user_id)
            if p is None:
                if not create:
                    raise NotFoundError(f"user {user_id} not found")
                p = UserProfile(id=user_id)
            for name, value in fields.items():
                column, as_json = _FIELDS[name]
                setattr(p, column, json.dumps(value) if as_json else value)
            p.updated_at = datetime.utcnow()
            s.add(p)
            s.commit()
            s.refresh(p)
            doc = _to_doc(p)
        invalidate_user(self.registry, user_id, changed_fields=fields.keys())
        logger.info(f"[users] updated user={user_id} fields={sorted(fields)}")
        return doc

    async def get_view(
        self,
        user_id: str,
        view: str,
        producer: Callable[[], Awaitable[T]],
        ttl: Optional[float] = None,
    ) -> T:
        """Derived per-user view (content-recommendations, feedback-history, ...)."""
        return await self.registry.views.get_or_set(user_key(user_id, view), producer, ttl)

    async def list_subcollection(
        self,
        user_id: str,
        name: str,
        producer: Callable[[], Awaitable[T]],
    ) -> T:
        return await self.registry.views.get_or_set(user_key(user_id, f"sub-{name}", "list"), producer)

    def invalidate_subcollection(self, user_id: str, name: str) -> int:
        return invalidate_subcollection(self.registry, user_id, name)
