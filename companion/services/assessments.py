# =============================================
# File: companion/services/assessments.py
# Purpose: Latest PERMA assessment per user behind the assessment cache
# =============================================
from __future__ import annotations

import json
from typing import Any, Dict, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from companion.db.models import Assessment
from companion.utils.cache_keys import user_key
from companion.utils.cache_registry import CacheRegistry
from companion.utils.invalidation import invalidate_assessment

PERMA = ("positive_emotion", "engagement", "relationships", "meaning", "accomplishment")


def _to_doc(a: Assessment) -> Dict[str, Any]:
    return {
        "id": a.id,
        "user_id": a.user_id,
        "scores": json.loads(a.scores_json or "{}"),
        "created_at": a.created_at.isoformat(),
    }


class AssessmentService:
    def __init__(self, engine: Engine, registry: CacheRegistry) -> None:
        self.engine = engine
        self.registry = registry

    async def latest(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Most recent assessment, or None when the user never took one (None is cached too)."""

        async def _fetch() -> Optional[Dict[str, Any]]:
            with Session(self.engine) as s:
                row = s.exec(
                    select(Assessment)
                    .where(Assessment.user_id == user_id)
                    .order_by(col(Assessment.created_at).desc(), col(Assessment.id).desc())
                ).first()
                return _to_doc(row) if row is not None else None

        return await self.registry.assessments.get_or_set(user_key(user_id, "latest-assessment"), _fetch)

    async def save(self, user_id: str, scores: Dict[str, float]) -> Dict[str, Any]:
        unknown = set(scores) - set(PERMA)
        if unknown:
            raise ValueError(f"unknown PERMA dimensions: {sorted(unknown)}")
        for dim, value in scores.items():
            if not 0 <= float(value) <= 10:
                raise ValueError(f"{dim} must be between 0 and 10")
        row = Assessment(user_id=user_id, scores_json=json.dumps({k: float(v) for k, v in scores.items()}))
        with Session(self.engine) as s:
            s.add(row)
            s.commit()
            s.refresh(row)
            doc = _to_doc(row)
        invalidate_assessment(self.registry, user_id)
        return doc
