# companion/routers/forum.py
from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field, field_validator

from companion.routers.errors import DOMAIN_ERRORS, http_error
from companion.services.container import Services, get_services
from companion.utils import slog

router = APIRouter(tags=["forum"])


# ---------- Schemas ----------

class PostCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    user_name: str = Field("", max_length=128)
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1, max_length=10000)
    category: str = "general"
    image_url: Optional[str] = None
    video_url: Optional[str] = None

    @field_validator("title", "content")
    @classmethod
    def _trim(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("must not be empty")
        return v


class PostUpdate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1, max_length=10000)
    category: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None

    @field_validator("title", "content", "category")
    @classmethod
    def _not_null(cls, v: Optional[str]) -> str:
        # omit a field to leave it unchanged; null is not a value for these columns
        if v is None:
            raise ValueError("must not be null")
        return v


class TextCreate(BaseModel):
    """Comment or reply."""
    user_id: str = Field(..., min_length=1, max_length=128)
    user_name: str = Field("", max_length=128)
    content: str = Field(..., min_length=1, max_length=5000)


class TextUpdate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    content: str = Field(..., min_length=1, max_length=5000)


class LikeRequest(BaseModel):
    kind: Literal["post", "comment", "reply"] = "post"
    item_id: str
    user_id: str = Field(..., min_length=1, max_length=128)
    post_id: Optional[str] = None


class LikeResponse(BaseModel):
    liked: bool


# ---------- Listings / detail ----------

@router.get("/posts")
async def list_posts(
    request: Request,
    sort_by: str = "created_at",
    page: int = 1,
    page_size: int = 10,
    last_visible_id: Optional[str] = None,
    q: Optional[str] = None,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Page of posts; `q` switches to search, `last_visible_id` to cursor pagination."""
    if page < 1 or not 1 <= page_size <= 50:
        raise HTTPException(status_code=422, detail="page must be >= 1 and page_size in 1..50")
    if q and last_visible_id:
        raise HTTPException(status_code=422, detail="search results use page numbers, not cursors")
    if q:
        request.state.log_context = {"qhash": slog.qhash(q)}
    try:
        if q:
            return await services.forum.search_posts(q, sort_by=sort_by, page=page, page_size=page_size)
        return await services.forum.fetch_posts(
            sort_by=sort_by, page=page, page_size=page_size, last_visible_id=last_visible_id
        )
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get("/posts/{post_id}")
async def get_post(post_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    try:
        return await services.forum.fetch_post(post_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


# ---------- Post writes ----------

@router.post("/posts", status_code=201)
async def create_post(body: PostCreate, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.forum.create_post(**body.model_dump())


@router.patch("/posts/{post_id}")
async def update_post(post_id: str, body: PostUpdate, services: Services = Depends(get_services)) -> Dict[str, Any]:
    updates = body.model_dump(exclude_unset=True, exclude={"user_id"})
    try:
        return await services.forum.update_post(post_id, body.user_id, **updates)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.delete("/posts/{post_id}", status_code=204)
async def delete_post(post_id: str, user_id: str, services: Services = Depends(get_services)) -> None:
    try:
        await services.forum.delete_post(post_id, user_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


# ---------- Comments / replies ----------

@router.post("/posts/{post_id}/comments", status_code=201)
async def create_comment(post_id: str, body: TextCreate, services: Services = Depends(get_services)) -> Dict[str, Any]:
    try:
        return await services.forum.create_comment(post_id, body.user_id, body.user_name, body.content)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.patch("/posts/{post_id}/comments/{comment_id}")
async def update_comment(
    post_id: str, comment_id: str, body: TextUpdate, services: Services = Depends(get_services)
) -> Dict[str, Any]:
    try:
        return await services.forum.update_comment(post_id, comment_id, body.user_id, body.content)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.delete("/posts/{post_id}/comments/{comment_id}", status_code=204)
async def delete_comment(
    post_id: str, comment_id: str, user_id: str, services: Services = Depends(get_services)
) -> None:
    try:
        await services.forum.delete_comment(post_id, comment_id, user_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post("/posts/{post_id}/comments/{comment_id}/replies", status_code=201)
async def create_reply(
    post_id: str, comment_id: str, body: TextCreate, services: Services = Depends(get_services)
) -> Dict[str, Any]:
    try:
        return await services.forum.create_reply(post_id, comment_id, body.user_id, body.user_name, body.content)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.patch("/posts/{post_id}/comments/{comment_id}/replies/{reply_id}")
async def update_reply(
    post_id: str, comment_id: str, reply_id: str, body: TextUpdate, services: Services = Depends(get_services)
) -> Dict[str, Any]:
    try:
        return await services.forum.update_reply(post_id, comment_id, reply_id, body.user_id, body.content)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.delete("/posts/{post_id}/comments/{comment_id}/replies/{reply_id}", status_code=204)
async def delete_reply(
    post_id: str, comment_id: str, reply_id: str, user_id: str, services: Services = Depends(get_services)
) -> None:
    try:
        await services.forum.delete_reply(post_id, comment_id, reply_id, user_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


# ---------- Likes ----------

@router.post("/like", response_model=LikeResponse)
async def toggle_like(body: LikeRequest, services: Services = Depends(get_services)) -> LikeResponse:
    """Toggle a like; the answer is authoritative and clients reconcile against it."""
    try:
        liked = await services.forum.toggle_like(body.kind, body.item_id, body.user_id, post_id=body.post_id)
        return LikeResponse(liked=liked)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
