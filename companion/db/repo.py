# =============================================
# File: companion/db/repo.py
# Purpose: DB repository bootstrap: configure engine from DB_URL (default SQLite) and expose init_db() to create tables.
# =============================================

import os
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from companion.db import models  # noqa: F401  (registers tables on SQLModel.metadata)

DB_URL = os.getenv("DB_URL", "sqlite:///./companion.db")


def make_engine(url: Optional[str] = None) -> Engine:
    url = url or os.getenv("DB_URL", DB_URL)
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees an empty DB
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, **kwargs)
    return create_engine(url, echo=False)


def init_db(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)
