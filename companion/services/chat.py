# =============================================
# File: companion/services/chat.py
# Purpose: Chat sessions/messages behind the session cache + size-bounded AI response cache
# =============================================
from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from companion.db.models import ChatMessage, ChatSession
from companion.services.errors import ForbiddenError, NotFoundError
from companion.utils import slog
from companion.utils.cache_keys import detail_key, response_key, user_key
from companion.utils.cache_registry import CacheRegistry
from companion.utils.invalidation import MESSAGES, SESSIONS, invalidate_sessions

ROLES = ("user", "assistant")


class ChatService:
    def __init__(self, engine: Engine, registry: CacheRegistry) -> None:
        self.engine = engine
        self.registry = registry

    async def list_sessions(self, user_id: str) -> List[Dict[str, Any]]:
        async def _fetch() -> List[Dict[str, Any]]:
            with Session(self.engine) as s:
                rows = s.exec(
                    select(ChatSession)
                    .where(ChatSession.user_id == user_id)
                    .order_by(col(ChatSession.updated_at).desc())
                ).all()
                return [r.model_dump(mode="json") for r in rows]

        return await self.registry.sessions.get_or_set(user_key(user_id, SESSIONS), _fetch)

    async def get_messages(self, session_id: str) -> List[Dict[str, Any]]:
        async def _fetch() -> List[Dict[str, Any]]:
            with Session(self.engine) as s:
                if s.get(ChatSession, session_id) is None:
                    raise NotFoundError(f"session {session_id} not found")
                rows = s.exec(
                    select(ChatMessage)
                    .where(ChatMessage.session_id == session_id)
                    .order_by(col(ChatMessage.created_at), col(ChatMessage.id))
                ).all()
                return [r.model_dump(mode="json") for r in rows]

        return await self.registry.sessions.get_or_set(detail_key(MESSAGES, session_id), _fetch)

    async def create_session(self, user_id: str, title: Optional[str] = None) -> Dict[str, Any]:
        session = ChatSession(user_id=user_id, title=title or "New conversation")
        with Session(self.engine) as s:
            s.add(session)
            s.commit()
            s.refresh(session)
            data = session.model_dump(mode="json")
        invalidate_sessions(self.registry, user_id)
        return data

    async def add_message(self, session_id: str, user_id: str, role: str, content: str) -> Dict[str, Any]:
        if role not in ROLES:
            raise ValueError(f"unknown role: {role}")
        with Session(self.engine) as s:
            session = s.get(ChatSession, session_id)
            if session is None:
                raise NotFoundError(f"session {session_id} not found")
            if session.user_id != user_id:
                raise ForbiddenError(f"session {session_id} belongs to another user")
            msg = ChatMessage(session_id=session_id, role=role, content=content)
            session.updated_at = datetime.utcnow()
            s.add(msg)
            s.add(session)
            s.commit()
            s.refresh(msg)
            data = msg.model_dump(mode="json")
        # session ordering (updated_at) and the transcript both changed
        invalidate_sessions(self.registry, user_id, session_id)
        return data

    async def cached_reply(
        self,
        prompt: str,
        generate: Callable[[], Awaitable[str]],
        context: Optional[str] = None,
    ) -> str:
        """
        Reuse a previous assistant answer for the same normalized prompt.
        The response cache is size bounded; the ceiling is checked after each fill.
        """
        cache = self.registry.responses
        key = response_key(prompt, context)
        hit = key in cache
        answer = await cache.get_or_set(key, generate)
        if not hit:
            evicted = cache.enforce_size()
            if evicted:
                logger.info(f"[chat] response cache trimmed evicted={evicted}")
        slog.log_event("chat.reply", qhash=slog.qhash(prompt), cache_hit=hit)
        return answer
