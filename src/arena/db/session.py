"""
Database session management for Arena.

Provides SQLAlchemy engine and session factory with proper
connection pooling configuration. Uses the settings from config.py.

Usage:
    from arena.db import get_session

    with get_session() as session:
        players = session.query(PlayerRecord).all()
        session.add(new_player)
        # Commits automatically on exit, rolls back on exception
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from arena.config import settings


def get_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create SQLAlchemy engine with connection pooling.

    The engine is configured with:
    - Connection pool for efficient reuse (server databases only; SQLite
      uses SQLAlchemy's own pool choice)
    - Echo mode disabled (set LOG_LEVEL=DEBUG for SQL logging)
    - Pre-ping to verify connections before use (handles stale connections)
    """
    url = database_url or settings.database_url
    kwargs = {
        "pool_pre_ping": True,
        "echo": settings.log_level == "DEBUG",
    }
    if not url.startswith("sqlite"):
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["max_overflow"] = settings.db_max_overflow
    return create_engine(url, **kwargs)


# Created on first use so importing the package never opens a connection
_engine: Optional[Engine] = None


def _get_engine() -> Engine:
    """Get or create the singleton engine instance."""
    global _engine
    if _engine is None:
        _engine = get_engine()
    return _engine


def make_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """Session factory bound to ``engine`` (the shared engine by default)."""
    return sessionmaker(
        autoflush=False,  # Don't auto-flush before queries (more control)
        expire_on_commit=False,
        bind=engine or _get_engine(),
    )


_session_factory: Optional[sessionmaker] = None


def SessionLocal() -> Session:
    """New session on the shared engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory()
    return _session_factory()


@contextmanager
def get_session(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Automatically commits on successful exit, rolls back on exception.

    Example:
        with get_session() as session:
            player = session.get(PlayerRecord, "alice")
            player.name = "Alice"
            # Commits automatically when exiting the block

    Raises:
        Any exception from the database operation (after rollback)
    """
    session = factory() if factory is not None else SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
