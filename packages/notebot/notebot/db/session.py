from __future__ import annotations

import os
from functools import lru_cache
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .base import Base

ERROR_DATABASE_URL_REQUIRED = "DATABASE_URL is required"


def get_database_url() -> str:
    database_url = os.getenv("DATABASE_URL", "").strip()
    if not database_url:
        raise RuntimeError(ERROR_DATABASE_URL_REQUIRED)
    return database_url


def _engine_options(database_url: str) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        # The scheduler thread and the CLI share one sqlite connection pool.
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    database_url = get_database_url()
    return create_engine(database_url, future=True, **_engine_options(database_url))


@lru_cache(maxsize=1)
def get_sessionmaker() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, future=True)


def open_session() -> Session:
    return get_sessionmaker()()


def init_db(bind: Engine | None = None) -> None:
    Base.metadata.create_all(bind=bind or get_engine())


def reset_engine() -> None:
    if get_engine.cache_info().currsize:
        get_engine().dispose()
    get_sessionmaker.cache_clear()
    get_engine.cache_clear()
