# companion/routers/chat.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from companion.routers.errors import DOMAIN_ERRORS, http_error
from companion.services.container import Services, get_services

router = APIRouter(tags=["chat"])


class SessionCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    title: Optional[str] = Field(None, max_length=200)


class MessageCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    role: Literal["user", "assistant"] = "user"
    content: str = Field(..., min_length=1, max_length=8000)


@router.get("/sessions")
async def list_sessions(user_id: str, services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return await services.chat.list_sessions(user_id)


@router.post("/sessions", status_code=201)
async def create_session(body: SessionCreate, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.chat.create_session(body.user_id, body.title)


@router.get("/sessions/{session_id}/messages")
async def get_messages(session_id: str, services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    try:
        return await services.chat.get_messages(session_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post("/sessions/{session_id}/messages", status_code=201)
async def add_message(
    session_id: str, body: MessageCreate, services: Services = Depends(get_services)
) -> Dict[str, Any]:
    try:
        return await services.chat.add_message(session_id, body.user_id, body.role, body.content)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
