"""Engine construction, the session factory and the declarative base."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.config import settings

Base = declarative_base()


def build_engine(url: str) -> Engine:
    """Create an engine for ``url``.

    Timer stores run their queries in threadpool workers, so SQLite
    connections must not be pinned to the creating thread. An in-memory
    SQLite database only exists on its one connection, hence the static pool.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)
    options: dict = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        options["poolclass"] = StaticPool
    return create_engine(url, **options)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


DB_URL = settings.database_url
engine = build_engine(DB_URL)
SessionLocal = make_session_factory(engine)


def get_db():
    """FastAPI dependency that yields a session and guarantees cleanup."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
