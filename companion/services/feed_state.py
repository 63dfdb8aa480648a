# =============================================
# File: companion/services/feed_state.py
# Purpose: Client-side forum feed state with optimistic like toggles reconciled against the server
# =============================================
from __future__ import annotations

import copy
from typing import Any, Dict, Iterable, List

from companion.services.forum import ForumService
from companion.services.errors import NotFoundError
from companion.utils.invalidation import invalidate_post
from companion.utils.optimistic import ToggleState, dict_accessors, optimistic_toggle


class LocalFeed:
    """
    What a screen holds in memory: posts (optionally with their comment tree),
    each carrying likes_count and the viewer's is_liked flag. Like actions
    update this state immediately and converge on the server's answer.
    """

    def __init__(self, forum: ForumService, user_id: str) -> None:
        self.forum = forum
        self.user_id = user_id
        self._posts: Dict[str, Dict[str, Any]] = {}

    def load(self, posts: Iterable[Dict[str, Any]], liked: Iterable[str] = ()) -> None:
        liked_ids = set(liked)
        for p in posts:
            item = copy.deepcopy(p)
            item["is_liked"] = item["id"] in liked_ids
            for c in item.get("comments", []):
                c["is_liked"] = c["id"] in liked_ids
                for r in c.get("replies", []):
                    r["is_liked"] = r["id"] in liked_ids
            self._posts[item["id"]] = item

    async def open_post(self, post_id: str) -> Dict[str, Any]:
        """Load a post's detail (comment tree) with the viewer's like flags."""
        detail = await self.forum.fetch_post(post_id)
        self.load([detail], liked=self.forum.liked_ids(self.user_id, post_id))
        return self._posts[post_id]

    def post(self, post_id: str) -> Dict[str, Any]:
        try:
            return self._posts[post_id]
        except KeyError:
            raise NotFoundError(f"post {post_id} not loaded") from None

    def posts(self) -> List[Dict[str, Any]]:
        return list(self._posts.values())

    async def like_post(self, post_id: str) -> ToggleState:
        read, write = dict_accessors(self.post(post_id))
        return await optimistic_toggle(
            read,
            write,
            remote=lambda: self.forum.toggle_like("post", post_id, self.user_id),
            invalidate=lambda: invalidate_post(self.forum.registry, post_id, listings=True),
        )

    async def like_comment(self, post_id: str, comment_id: str) -> ToggleState:
        comment = self._find(self.post(post_id).get("comments", []), comment_id, "comment")
        return await self._toggle_nested(post_id, "comment", comment)

    async def like_reply(self, post_id: str, comment_id: str, reply_id: str) -> ToggleState:
        comment = self._find(self.post(post_id).get("comments", []), comment_id, "comment")
        reply = self._find(comment.get("replies", []), reply_id, "reply")
        return await self._toggle_nested(post_id, "reply", reply)

    async def _toggle_nested(self, post_id: str, kind: str, item: Dict[str, Any]) -> ToggleState:
        # Nested items live inside the parent's detail entry, so that is what goes stale
        read, write = dict_accessors(item)
        return await optimistic_toggle(
            read,
            write,
            remote=lambda: self.forum.toggle_like(kind, item["id"], self.user_id, post_id=post_id),
            invalidate=lambda: invalidate_post(self.forum.registry, post_id),
        )

    @staticmethod
    def _find(items: List[Dict[str, Any]], item_id: str, kind: str) -> Dict[str, Any]:
        for it in items:
            if it.get("id") == item_id:
                return it
        raise NotFoundError(f"{kind} {item_id} not loaded")
