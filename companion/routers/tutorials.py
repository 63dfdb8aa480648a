# companion/routers/tutorials.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator

from companion.routers.errors import DOMAIN_ERRORS, http_error
from companion.services.container import Services, get_services

router = APIRouter(tags=["tutorials"])


class TutorialCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    content: str = ""
    category: str = "general"
    difficulty: Literal["beginner", "intermediate", "advanced"] = "beginner"
    duration_minutes: int = Field(0, ge=0)


class TutorialUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[Literal["beginner", "intermediate", "advanced"]] = None
    duration_minutes: Optional[int] = Field(None, ge=0)

    @field_validator("title", "description", "content", "category", "difficulty", "duration_minutes")
    @classmethod
    def _not_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("must not be null")
        return v


@router.get("")
async def list_tutorials(
    page: int = 1,
    limit: int = 10,
    q: Optional[str] = None,
    category: List[str] = Query(default=[]),
    difficulty: List[str] = Query(default=[]),
    sort_field: str = "created_at",
    sort_direction: Literal["asc", "desc"] = "desc",
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    if page < 1 or not 1 <= limit <= 50:
        raise HTTPException(status_code=422, detail="page must be >= 1 and limit in 1..50")
    try:
        return await services.tutorials.fetch_tutorials(
            page=page,
            limit=limit,
            search=q,
            categories=category,
            difficulties=difficulty,
            sort_field=sort_field,
            sort_direction=sort_direction,
        )
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get("/recommended/{user_id}")
async def recommended(
    user_id: str,
    completed: List[str] = Query(default=[]),
    limit: int = 3,
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await services.tutorials.recommended_tutorials(user_id, completed_ids=completed, limit=limit)


@router.get("/{tutorial_id}")
async def get_tutorial(tutorial_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    try:
        return await services.tutorials.fetch_tutorial(tutorial_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post("", status_code=201)
async def create_tutorial(body: TutorialCreate, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.tutorials.create_tutorial(**body.model_dump())


@router.patch("/{tutorial_id}")
async def update_tutorial(
    tutorial_id: str, body: TutorialUpdate, services: Services = Depends(get_services)
) -> Dict[str, Any]:
    try:
        return await services.tutorials.update_tutorial(tutorial_id, **body.model_dump(exclude_unset=True))
    except DOMAIN_ERRORS as e:
        raise http_error(e)
