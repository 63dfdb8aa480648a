# companion/routers/users.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator

from companion.routers.errors import DOMAIN_ERRORS, http_error
from companion.services.container import Services, get_services

router = APIRouter(tags=["users"])


class UserPatch(BaseModel):
    display_name: Optional[str] = Field(None, max_length=128)
    email: Optional[str] = None
    preferences: Optional[Dict[str, Any]] = None
    interests: Optional[List[str]] = None
    goals: Optional[List[str]] = None

    @field_validator("display_name", "preferences", "interests", "goals")
    @classmethod
    def _not_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("must not be null")
        return v


class AssessmentIn(BaseModel):
    scores: Dict[str, float]


@router.get("/{user_id}")
async def get_user(user_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    try:
        return await services.users.get_user(user_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.put("/{user_id}")
async def upsert_user(user_id: str, body: UserPatch, services: Services = Depends(get_services)) -> Dict[str, Any]:
    try:
        return await services.users.update_user(user_id, body.model_dump(exclude_unset=True), create=True)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.patch("/{user_id}")
async def patch_user(user_id: str, body: UserPatch, services: Services = Depends(get_services)) -> Dict[str, Any]:
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=422, detail="Nothing to update.")
    try:
        return await services.users.update_user(user_id, fields)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get("/{user_id}/assessment")
async def latest_assessment(user_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    found = await services.assessments.latest(user_id)
    if found is None:
        raise HTTPException(status_code=404, detail=f"no assessment for user {user_id}")
    return found


@router.post("/{user_id}/assessment", status_code=201)
async def save_assessment(
    user_id: str, body: AssessmentIn, services: Services = Depends(get_services)
) -> Dict[str, Any]:
    try:
        return await services.assessments.save(user_id, body.scores)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
