"""
Database connection utilities.
"""

from typing import Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from grouppoll.common import settings

DBSession = Session

# Cached engine and session factory for connection pooling
_engine = None
_session_factory = None


def engine_options(url: str) -> dict:
    """Engine keyword arguments suited to the database backend."""
    if url.startswith("sqlite"):
        # SQLite is used for local runs and tests; writers wait on the file lock
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    return {
        "pool_pre_ping": True,  # Verify connections before use
        "pool_recycle": 3600,  # Recycle connections after 1 hour
    }


def get_engine():
    """Get or create SQLAlchemy engine with connection pooling.

    The engine is cached so every request shares one pool.
    """
    global _engine
    if _engine is None:
        _engine = create_engine(settings.DB_URL, **engine_options(settings.DB_URL))
    return _engine


def reset_engine() -> None:
    """Drop the cached engine and factories (after DB_URL changes)."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = _session_factory = None


def get_session_factory():
    """Get or create a cached session factory for SQLAlchemy sessions."""
    global _session_factory
    if _session_factory is None:
        engine = get_engine()
        _session_factory = sessionmaker(bind=engine)
    return _session_factory


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency for database sessions"""
    session_factory = get_session_factory()
    session = session_factory()
    try:
        yield session
    finally:
        session.close()

