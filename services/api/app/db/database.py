from __future__ import annotations

import os

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

_ENGINE: Engine | None = None
_ENGINE_URL: str | None = None
_SESSIONMAKER: sessionmaker | None = None


def database_url() -> str:
    # Local-only default. Deployments using MARKET_STORE_BACKEND=sql set DATABASE_URL.
    return os.getenv("DATABASE_URL", "sqlite+pysqlite:///.local/market.db")


def get_engine() -> Engine:
    """Return the engine for the current DATABASE_URL.

    Cached per URL, so tests can point DATABASE_URL at a temp file before use.
    """

    global _ENGINE, _ENGINE_URL, _SESSIONMAKER

    url = database_url()
    if _ENGINE is not None and _ENGINE_URL == url:
        return _ENGINE

    dispose_engine()
    if url.startswith("sqlite"):
        # Store calls run on worker threads.
        engine = create_engine(url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(url, pool_pre_ping=True)

    _ENGINE = engine
    _ENGINE_URL = url
    _SESSIONMAKER = sessionmaker(bind=engine, class_=Session, autoflush=False)
    return engine


def db_session() -> Session:
    get_engine()
    assert _SESSIONMAKER is not None
    return _SESSIONMAKER()


def dispose_engine() -> None:
    global _ENGINE, _ENGINE_URL, _SESSIONMAKER

    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _ENGINE_URL = None
    _SESSIONMAKER = None
