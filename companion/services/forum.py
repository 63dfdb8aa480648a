# =============================================
# File: companion/services/forum.py
# Purpose: Forum data access (posts, comments, replies, likes) fronted by the forum/post caches
# =============================================
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from loguru import logger
from sqlalchemy import and_, func, or_
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from companion.db.models import Comment, Like, Post, Reply
from companion.services.errors import ForbiddenError, NotFoundError
from companion.utils.cache_keys import detail_key, listing_key, normalize_search
from companion.utils.cache_registry import CacheRegistry
from companion.utils.invalidation import POSTS, invalidate_forum_listings, invalidate_post

SORT_FIELDS = ("created_at", "likes_count", "comments_count")
LIKE_KINDS = ("post", "comment", "reply")
_POST_FIELDS = ("title", "content", "category", "image_url", "video_url")


def _dump(obj: Any) -> Dict[str, Any]:
    return obj.model_dump(mode="json")


def _check_sort(sort_by: str) -> str:
    if sort_by not in SORT_FIELDS:
        raise ValueError(f"unsupported sort field: {sort_by}")
    return sort_by


class ForumService:
    """
    Reads go through get_or_set on registry.forum (listings) and registry.posts
    (one post with its comment tree); every write invalidates what it made stale.
    """

    def __init__(self, engine: Engine, registry: CacheRegistry, page_size: int = 10) -> None:
        self.engine = engine
        self.registry = registry
        self.page_size = page_size

    # ---------- reads ----------

    async def fetch_posts(
        self,
        sort_by: str = "created_at",
        page: int = 1,
        page_size: Optional[int] = None,
        last_visible_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        _check_sort(sort_by)
        size = page_size or self.page_size
        if last_visible_id:
            key = listing_key(POSTS, sort_by, cursor=last_visible_id, page_size=size)
        else:
            key = listing_key(POSTS, sort_by, page=page, page_size=size)

        async def _fetch() -> Dict[str, Any]:
            return self._query_posts(sort_by, page, size, last_visible_id, None)

        return await self.registry.forum.get_or_set(key, _fetch)

    async def search_posts(
        self,
        query: str,
        sort_by: str = "created_at",
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        q = normalize_search(query)
        if not q:
            return await self.fetch_posts(sort_by=sort_by, page=page, page_size=page_size)
        _check_sort(sort_by)
        size = page_size or self.page_size
        key = listing_key(POSTS, sort_by, page=page, search=q, page_size=size)

        async def _fetch() -> Dict[str, Any]:
            return self._query_posts(sort_by, page, size, None, q)

        return await self.registry.forum.get_or_set(key, _fetch)

    async def fetch_post(self, post_id: str) -> Dict[str, Any]:
        async def _fetch() -> Dict[str, Any]:
            with Session(self.engine) as s:
                post = s.get(Post, post_id)
                if post is None:
                    raise NotFoundError(f"post {post_id} not found")
                comments = s.exec(
                    select(Comment).where(Comment.post_id == post_id).order_by(col(Comment.created_at))
                ).all()
                replies = s.exec(
                    select(Reply).where(Reply.post_id == post_id).order_by(col(Reply.created_at))
                ).all()
                by_comment: Dict[str, List[Dict[str, Any]]] = {}
                for r in replies:
                    by_comment.setdefault(r.comment_id, []).append(_dump(r))
                data = _dump(post)
                data["comments"] = [
                    {**_dump(c), "replies": by_comment.get(c.id, [])} for c in comments
                ]
                return data

        return await self.registry.posts.get_or_set(detail_key(POSTS, post_id), _fetch)

    def liked_ids(self, user_id: str, post_id: str) -> Set[str]:
        """Ids of the post/comments/replies under post_id that user_id has liked (uncached)."""
        with Session(self.engine) as s:
            rows = s.exec(
                select(Like.item_id).where(Like.post_id == post_id, Like.user_id == user_id)
            ).all()
            return set(rows)

    def _query_posts(
        self,
        sort_by: str,
        page: int,
        size: int,
        cursor: Optional[str],
        search: Optional[str],
    ) -> Dict[str, Any]:
        sort_col = getattr(Post, sort_by)
        with Session(self.engine) as s:
            stmt = select(Post)
            if search:
                like = f"%{search}%"
                stmt = stmt.where(
                    or_(func.lower(Post.title).like(like), func.lower(Post.content).like(like))
                )
            if cursor:
                anchor = s.get(Post, cursor)
                if anchor is None:
                    raise NotFoundError(f"cursor post {cursor} not found")
                pivot = getattr(anchor, sort_by)
                stmt = stmt.where(
                    or_(sort_col < pivot, and_(sort_col == pivot, col(Post.id) < anchor.id))
                )
            stmt = stmt.order_by(col(sort_col).desc(), col(Post.id).desc())
            if not cursor:
                stmt = stmt.offset(max(0, page - 1) * size)
            rows = s.exec(stmt.limit(size + 1)).all()

        posts = [_dump(p) for p in rows[:size]]
        return {
            "posts": posts,
            "page": None if cursor else page,
            "last_visible_id": posts[-1]["id"] if posts else None,
            "has_more": len(rows) > size,
        }

    # ---------- post writes ----------

    async def create_post(
        self,
        user_id: str,
        user_name: str,
        title: str,
        content: str,
        category: str = "general",
        image_url: Optional[str] = None,
        video_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        post = Post(
            user_id=user_id,
            user_name=user_name,
            title=title,
            content=content,
            category=category,
            image_url=image_url,
            video_url=video_url,
        )
        with Session(self.engine) as s:
            s.add(post)
            s.commit()
            s.refresh(post)
            data = _dump(post)
        invalidate_forum_listings(self.registry)
        logger.info(f"[forum] post created id={data['id']} user={user_id}")
        return data

    async def update_post(self, post_id: str, user_id: str, **updates: Any) -> Dict[str, Any]:
        unknown = set(updates) - set(_POST_FIELDS)
        if unknown:
            raise ValueError(f"cannot update fields: {sorted(unknown)}")
        with Session(self.engine) as s:
            post = self._owned(s, Post, post_id, user_id)
            for k, v in updates.items():
                setattr(post, k, v)
            post.updated_at = datetime.utcnow()
            s.add(post)
            s.commit()
            s.refresh(post)
            data = _dump(post)
        invalidate_post(self.registry, post_id, listings=True)
        return data

    async def delete_post(self, post_id: str, user_id: str) -> None:
        with Session(self.engine) as s:
            post = self._owned(s, Post, post_id, user_id)
            for model in (Like, Reply, Comment):
                for row in s.exec(select(model).where(model.post_id == post_id)).all():
                    s.delete(row)
            s.delete(post)
            s.commit()
        invalidate_post(self.registry, post_id, listings=True)
        logger.info(f"[forum] post deleted id={post_id} user={user_id}")

    # ---------- comments / replies ----------

    async def create_comment(self, post_id: str, user_id: str, user_name: str, content: str) -> Dict[str, Any]:
        with Session(self.engine) as s:
            post = self._require(s, Post, post_id)
            comment = Comment(post_id=post_id, user_id=user_id, user_name=user_name, content=content)
            post.comments_count += 1
            s.add(comment)
            s.add(post)
            s.commit()
            s.refresh(comment)
            data = _dump(comment)
        # comments_count is shown on listing pages
        invalidate_post(self.registry, post_id, listings=True)
        return data

    async def update_comment(self, post_id: str, comment_id: str, user_id: str, content: str) -> Dict[str, Any]:
        with Session(self.engine) as s:
            comment = self._owned(s, Comment, comment_id, user_id, post_id=post_id)
            comment.content = content
            comment.updated_at = datetime.utcnow()
            s.add(comment)
            s.commit()
            s.refresh(comment)
            data = _dump(comment)
        invalidate_post(self.registry, post_id)
        return data

    async def delete_comment(self, post_id: str, comment_id: str, user_id: str) -> None:
        with Session(self.engine) as s:
            comment = self._owned(s, Comment, comment_id, user_id, post_id=post_id)
            reply_ids = [r.id for r in s.exec(select(Reply).where(Reply.comment_id == comment_id)).all()]
            for like in s.exec(
                select(Like).where(Like.post_id == post_id, col(Like.item_id).in_([comment_id, *reply_ids]))
            ).all():
                s.delete(like)
            for reply in s.exec(select(Reply).where(Reply.comment_id == comment_id)).all():
                s.delete(reply)
            s.delete(comment)
            post = s.get(Post, post_id)
            if post is not None:
                post.comments_count = max(0, post.comments_count - 1)
                s.add(post)
            s.commit()
        invalidate_post(self.registry, post_id, listings=True)

    async def create_reply(
        self, post_id: str, comment_id: str, user_id: str, user_name: str, content: str
    ) -> Dict[str, Any]:
        with Session(self.engine) as s:
            self._require(s, Comment, comment_id, post_id=post_id)
            reply = Reply(post_id=post_id, comment_id=comment_id, user_id=user_id, user_name=user_name, content=content)
            s.add(reply)
            s.commit()
            s.refresh(reply)
            data = _dump(reply)
        invalidate_post(self.registry, post_id)
        return data

    async def update_reply(
        self, post_id: str, comment_id: str, reply_id: str, user_id: str, content: str
    ) -> Dict[str, Any]:
        with Session(self.engine) as s:
            reply = self._owned(s, Reply, reply_id, user_id, post_id=post_id)
            if reply.comment_id != comment_id:
                raise NotFoundError(f"reply {reply_id} not found under comment {comment_id}")
            reply.content = content
            reply.updated_at = datetime.utcnow()
            s.add(reply)
            s.commit()
            s.refresh(reply)
            data = _dump(reply)
        invalidate_post(self.registry, post_id)
        return data

    async def delete_reply(self, post_id: str, comment_id: str, reply_id: str, user_id: str) -> None:
        with Session(self.engine) as s:
            reply = self._owned(s, Reply, reply_id, user_id, post_id=post_id)
            if reply.comment_id != comment_id:
                raise NotFoundError(f"reply {reply_id} not found under comment {comment_id}")
            for like in s.exec(select(Like).where(Like.kind == "reply", Like.item_id == reply_id)).all():
                s.delete(like)
            s.delete(reply)
            s.commit()
        invalidate_post(self.registry, post_id)

    # ---------- likes ----------

    async def toggle_like(
        self,
        kind: str,
        item_id: str,
        user_id: str,
        post_id: Optional[str] = None,
    ) -> bool:
        """Flip user_id's like on a post/comment/reply; returns whether it is liked afterwards."""
        if kind not in LIKE_KINDS:
            raise ValueError(f"unknown like target: {kind}")
        if kind == "post":
            post_id = item_id
        elif not post_id:
            raise ValueError(f"post_id is required to like a {kind}")
        model = {"post": Post, "comment": Comment, "reply": Reply}[kind]

        with Session(self.engine) as s:
            target = s.get(model, item_id)
            if target is None or getattr(target, "post_id", item_id) != post_id:
                raise NotFoundError(f"{kind} {item_id} not found")
            existing = s.exec(
                select(Like).where(Like.kind == kind, Like.item_id == item_id, Like.user_id == user_id)
            ).first()
            if existing is not None:
                s.delete(existing)
                target.likes_count = max(0, target.likes_count - 1)
            else:
                s.add(Like(kind=kind, item_id=item_id, post_id=post_id, user_id=user_id))
                target.likes_count += 1
            s.add(target)
            s.commit()
        liked = existing is None

        if kind == "post":
            invalidate_post(self.registry, post_id, listings=True)
        else:
            # nested likes only show inside the post detail
            invalidate_post(self.registry, post_id)
        return liked

    # ---------- helpers ----------

    @staticmethod
    def _require(s: Session, model: Any, item_id: str, post_id: Optional[str] = None) -> Any:
        row = s.get(model, item_id)
        if row is None or (post_id is not None and row.post_id != post_id):
            raise NotFoundError(f"{model.__name__.lower()} {item_id} not found")
        return row

    def _owned(self, s: Session, model: Any, item_id: str, user_id: str, post_id: Optional[str] = None) -> Any:
        row = self._require(s, model, item_id, post_id=post_id)
        if row.user_id != user_id:
            raise ForbiddenError(f"{model.__name__.lower()} {item_id} belongs to another user")
        return row
