"""
SQLAlchemy ORM models for Arena.

The engine keeps its working state in memory; these tables are the durable
copy written by ``arena.db.store.SqlStore`` as events arrive.

Key design decisions:
- Ids are the engine's own uuid hex strings, so rows can be upserted
  without a lookup table
- At most one active queue entry per (player, mode) is enforced by a
  partial unique index over active rows only. The active flag is never
  part of the key, so any number of closed entries can coexist.
- A tournament's bracket is stored whole as the engine snapshot (JSON)
- Matches store their player ids and scores as JSON so multi-player modes
  need no extra tables

Tables:
- players: Player records with cumulative stats and derived rank
- queue_entries: Every queue wait, open or closed
- matches: Standalone and tournament matches
- tournaments: Tournament master data and bracket snapshot
- tournament_participants: Roster membership with seed order
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from arena.models import utc_now

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# =============================================================================
# Player Models
# =============================================================================

class PlayerRecord(Base):
    """
    Durable copy of a player's statistics.

    Counters are only ever written from the ledger's result, never
    incremented in SQL, so replaying an event is harmless.
    """
    __tablename__ = "players"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Cumulative stats
    games_played: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    wins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    losses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    best_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    play_time_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    xp: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Derived values (recomputed by the rating calculator)
    rating: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    rank_tier: Mapped[str] = mapped_column(String(20), default="bronze", nullable=False)
    career_rank: Mapped[str] = mapped_column(String(20), default="Novice", nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("idx_players_rating", "rating"),
        CheckConstraint("games_played >= 0 AND wins >= 0 AND losses >= 0", name="ck_players_counts"),
    )

    def __repr__(self) -> str:
        return f"<PlayerRecord(id={self.id}, rating={self.rating})>"


# =============================================================================
# Matchmaking Models
# =============================================================================

class QueueEntryRecord(Base):
    """
    One player's wait in one mode's queue.

    closed_reason is 'matched', 'left', 'expired' or 'restart' once the
    entry is inactive.
    """
    __tablename__ = "queue_entries"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    player_id: Mapped[str] = mapped_column(ForeignKey("players.id"), nullable=False)
    mode: Mapped[str] = mapped_column(String(30), nullable=False)

    rating: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    min_rating: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_rating: Mapped[int] = mapped_column(Integer, default=9999, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    closed_reason: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    match_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    joined_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        # Backstop for the in-process queue lock: only active rows take part
        Index(
            "uq_queue_entries_active_player_mode",
            "player_id",
            "mode",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("idx_queue_entries_mode_joined", "mode", "joined_at"),
        CheckConstraint("min_rating <= max_rating", name="ck_queue_entries_bounds"),
    )

    def __repr__(self) -> str:
        return (
            f"<QueueEntryRecord(player={self.player_id}, mode='{self.mode}', "
            f"active={self.is_active})>"
        )


class MatchRecord(Base):
    """
    A standalone or tournament match.

    Status values:
    - 'scheduled': Created, nobody has acted yet
    - 'ongoing': At least one participant acted
    - 'completed': Result reported
    - 'forfeited': Result imposed by the timeout sweep
    """
    __tablename__ = "matches"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    mode: Mapped[str] = mapped_column(String(30), nullable=False)

    # Tournament context (NULL for queue matches)
    tournament_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=True
    )
    round_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    round_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # Ordered participant ids, e.g. ["p1", "p2"]
    player_ids: Mapped[list] = mapped_column(JSONType, nullable=False)

    status: Mapped[str] = mapped_column(String(20), default="scheduled", nullable=False)
    winner_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # {"p1": 11, "p2": 7}
    scores: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    forfeited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    tournament: Mapped[Optional["TournamentRecord"]] = relationship(back_populates="matches")

    __table_args__ = (
        Index("idx_matches_status", "status"),
        Index("idx_matches_tournament", "tournament_id", "round_number"),
    )

    @property
    def is_completed(self) -> bool:
        return self.status in ("completed", "forfeited")

    def __repr__(self) -> str:
        return f"<MatchRecord(id={self.id}, status='{self.status}')>"


# =============================================================================
# Tournament Models
# =============================================================================

class TournamentRecord(Base):
    """
    Tournament master data.

    bracket_state holds the engine snapshot (nodes, rounds, standings) as
    of the latest event, so a bracket can be displayed without replaying
    results.
    """
    __tablename__ = "tournaments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    mode: Mapped[str] = mapped_column(String(30), nullable=False)
    bracket_type: Mapped[str] = mapped_column(String(30), nullable=False)
    seeding: Mapped[str] = mapped_column(String(20), default="manual", nullable=False)

    # 'upcoming', 'ongoing', 'completed', 'cancelled'
    status: Mapped[str] = mapped_column(String(20), default="upcoming", nullable=False)
    winner_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    auto_start: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    auto_start_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    bracket_state: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    participants: Mapped[list["TournamentParticipant"]] = relationship(
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="TournamentParticipant.seed",
    )
    matches: Mapped[list["MatchRecord"]] = relationship(back_populates="tournament")

    __table_args__ = (
        Index("idx_tournaments_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<TournamentRecord(id={self.id}, name='{self.name}', status='{self.status}')>"


class TournamentParticipant(Base):
    """Roster membership. ``seed`` is the 0-based roster position."""
    __tablename__ = "tournament_participants"

    id: Mapped[int] = mapped_column(primary_key=True)
    tournament_id: Mapped[str] = mapped_column(
        ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    player_id: Mapped[str] = mapped_column(ForeignKey("players.id"), nullable=False)
    seed: Mapped[int] = mapped_column(Integer, nullable=False)

    tournament: Mapped["TournamentRecord"] = relationship(back_populates="participants")

    __table_args__ = (
        UniqueConstraint("tournament_id", "player_id", name="uq_tournament_participant"),
    )

    def __repr__(self) -> str:
        return f"<TournamentParticipant(tournament={self.tournament_id}, player={self.player_id})>"
