"""
Database module for Arena.

Provides SQLAlchemy ORM models, session management, and the event-driven
store that keeps them in sync with the engine.

Usage:
    from arena.db import get_session, PlayerRecord

    with get_session() as session:
        players = session.query(PlayerRecord).all()
"""

from arena.db.models import (
    Base,
    MatchRecord,
    PlayerRecord,
    QueueEntryRecord,
    TournamentParticipant,
    TournamentRecord,
)
from arena.db.session import SessionLocal, get_engine, get_session, make_session_factory
from arena.db.store import SqlStore

__all__ = [
    # Base
    "Base",
    # Models
    "MatchRecord",
    "PlayerRecord",
    "QueueEntryRecord",
    "TournamentParticipant",
    "TournamentRecord",
    # Session
    "SessionLocal",
    "get_engine",
    "get_session",
    "make_session_factory",
    # Store
    "SqlStore",
]
