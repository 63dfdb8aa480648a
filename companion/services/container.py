# =============================================
# File: companion/services/container.py
# Purpose: Explicitly constructed service graph (engine + cache registry + data-access services)
# =============================================
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from companion.db.repo import init_db, make_engine
from companion.services.assessments import AssessmentService
from companion.services.chat import ChatService
from companion.services.forum import ForumService
from companion.services.tutorials import TutorialService
from companion.services.users import UserService
from companion.utils.cache_registry import CacheRegistry, build_registry


@dataclass
class Services:
    engine: Engine
    registry: CacheRegistry
    forum: ForumService
    tutorials: TutorialService
    users: UserService
    chat: ChatService
    assessments: AssessmentService


def build_services(engine: Optional[Engine] = None, registry: Optional[CacheRegistry] = None) -> Services:
    engine = engine or make_engine()
    init_db(engine)
    registry = registry or build_registry()
    return Services(
        engine=engine,
        registry=registry,
        forum=ForumService(engine, registry),
        tutorials=TutorialService(engine, registry),
        users=UserService(engine, registry),
        chat=ChatService(engine, registry),
        assessments=AssessmentService(engine, registry),
    )


_services: Optional[Services] = None


def get_services() -> Services:
    """FastAPI dependency; built lazily so tests can install their own first."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: Optional[Services]) -> None:
    global _services
    _services = services
