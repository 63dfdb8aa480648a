# =============================================
# File: companion/db/models.py
# Purpose: SQLModel ORM definitions for the document store behind the caches: forum posts with
#          comments/replies/likes, tutorials, user profiles, chat sessions and assessments.
# =============================================

import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


def _uid() -> str:
    return uuid.uuid4().hex


class Post(SQLModel, table=True):
    id: str = Field(default_factory=_uid, primary_key=True)
    user_id: str = Field(index=True)
    user_name: str = ""
    title: str
    content: str
    category: str = "general"
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    likes_count: int = 0
    comments_count: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Comment(SQLModel, table=True):
    id: str = Field(default_factory=_uid, primary_key=True)
    post_id: str = Field(index=True)
    user_id: str
    user_name: str = ""
    content: str
    likes_count: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Reply(SQLModel, table=True):
    id: str = Field(default_factory=_uid, primary_key=True)
    post_id: str = Field(index=True)
    comment_id: str = Field(index=True)
    user_id: str
    user_name: str = ""
    content: str
    likes_count: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Like(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    kind: str = Field(index=True)       # post | comment | reply
    item_id: str = Field(index=True)
    post_id: str = Field(index=True)
    user_id: str = Field(index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Tutorial(SQLModel, table=True):
    id: str = Field(default_factory=_uid, primary_key=True)
    title: str
    description: str = ""
    content: str = ""
    category: str = Field(default="general", index=True)
    difficulty: str = Field(default="beginner", index=True)
    duration_minutes: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class UserProfile(SQLModel, table=True):
    id: str = Field(primary_key=True)
    display_name: str = ""
    email: Optional[str] = None
    preferences_json: str = "{}"
    interests_json: str = "[]"
    goals_json: str = "[]"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ChatSession(SQLModel, table=True):
    id: str = Field(default_factory=_uid, primary_key=True)
    user_id: str = Field(index=True)
    title: str = "New conversation"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, index=True)


class ChatMessage(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: str = Field(index=True)
    role: str                            # user | assistant
    content: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Assessment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    scores_json: str = "{}"
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
