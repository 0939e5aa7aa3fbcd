"""
In-process domain records for Arena.

These dataclasses are the state the engine works on. The SQLAlchemy models
in ``arena.db.models`` mirror them for persistence, but nothing in the
engine depends on a database being present.

Records:
- PlayerStats / Player: cumulative per-player statistics and derived rank
- QueueEntry: one player's wait in one game mode's queue
- MatchResult / Match: a game between two or more players, standalone or
  part of a tournament round
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from arena.errors import AlreadyReported, InvalidResult, InvariantViolation
from arena.statuses import is_terminal_match_status


def utc_now() -> datetime:
    """Naive UTC timestamp, the convention used throughout storage."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


# =============================================================================
# Players
# =============================================================================

@dataclass
class PlayerStats:
    """Cumulative counters for one player. All values are non-negative."""

    games_played: int = 0
    wins: int = 0
    losses: int = 0
    total_score: int = 0
    current_streak: int = 0
    best_streak: int = 0
    play_time_seconds: int = 0
    xp: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class Player:
    """
    A player as seen by the engine.

    ``rating``, ``level``, ``rank_tier`` and ``career_rank`` are derived from
    ``stats`` by the rating calculator and only change after a completed game.
    """

    id: str
    name: Optional[str] = None
    stats: PlayerStats = field(default_factory=PlayerStats)
    rating: int = 0
    level: int = 1
    rank_tier: str = "bronze"
    career_rank: str = "Novice"
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "stats": self.stats.to_dict(),
            "rating": self.rating,
            "level": self.level,
            "rank_tier": self.rank_tier,
            "career_rank": self.career_rank,
            "updated_at": self.updated_at.isoformat(),
        }


# =============================================================================
# Queue
# =============================================================================

@dataclass
class QueueEntry:
    """
    One player's wait in one mode's queue.

    Only the matchmaking queue flips ``active``; once an entry is closed it is
    never reopened. A player who queues again gets a fresh entry.
    """

    player_id: str
    mode: str
    rating: int = 0
    min_rating: int = 0
    max_rating: int = 9999
    joined_at: datetime = field(default_factory=utc_now)
    expires_at: Optional[datetime] = None
    active: bool = True
    id: str = field(default_factory=new_id)
    # 'matched', 'left' or 'expired' once inactive
    closed_reason: Optional[str] = None
    match_id: Optional[str] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.player_id, self.mode)

    def wait_seconds(self, now: datetime) -> float:
        return max((now - self.joined_at).total_seconds(), 0.0)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def accepts(self, rating: int) -> bool:
        """Whether an opponent with ``rating`` is inside this entry's bounds."""
        return self.min_rating <= rating <= self.max_rating

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "player_id": self.player_id,
            "mode": self.mode,
            "rating": self.rating,
            "min_rating": self.min_rating,
            "max_rating": self.max_rating,
            "joined_at": self.joined_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "active": self.active,
            "closed_reason": self.closed_reason,
            "match_id": self.match_id,
        }


# =============================================================================
# Matches
# =============================================================================

@dataclass(frozen=True)
class MatchResult:
    """Final outcome of a match: one winner plus per-player scores."""

    winner_id: str
    scores: dict[str, int] = field(default_factory=dict)
    forfeited: bool = False

    def score_for(self, player_id: str) -> int:
        return self.scores.get(player_id, 0)


@dataclass
class Match:
    """
    A game between two (or more, for multi-player modes) players.

    Status lifecycle:
    - 'scheduled': created by the queue or the bracket engine
    - 'ongoing': at least one participant has acted
    - 'completed': result reported
    - 'forfeited': result imposed by the timeout sweep

    A match is immutable once it reaches a terminal status.
    """

    mode: str
    player_ids: tuple[str, ...]
    id: str = field(default_factory=new_id)
    status: str = "scheduled"
    tournament_id: Optional[str] = None
    round_number: Optional[int] = None
    round_code: Optional[str] = None
    result: Optional[MatchResult] = None
    created_at: datetime = field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_activity: dict[str, datetime] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.player_ids = tuple(self.player_ids)
        if len(self.player_ids) < 2:
            raise InvariantViolation(
                "A match needs at least two players", player_ids=list(self.player_ids)
            )
        if len(set(self.player_ids)) != len(self.player_ids):
            raise InvariantViolation(
                "A player cannot be matched against themself", player_ids=list(self.player_ids)
            )

    @property
    def is_completed(self) -> bool:
        """Check if match has finished (any terminal status)."""
        return is_terminal_match_status(self.status)

    @property
    def is_pending(self) -> bool:
        return not self.is_completed

    @property
    def winner_id(self) -> Optional[str]:
        return self.result.winner_id if self.result else None

    @property
    def loser_ids(self) -> tuple[str, ...]:
        if self.result is None:
            return ()
        return tuple(p for p in self.player_ids if p != self.result.winner_id)

    def has_player(self, player_id: str) -> bool:
        return player_id in self.player_ids

    def mark_activity(self, player_id: str, now: Optional[datetime] = None) -> None:
        """Record that ``player_id`` acted; moves a scheduled match to ongoing."""
        if self.is_completed:
            raise AlreadyReported(f"Match {self.id} is already {self.status}", match_id=self.id)
        if not self.has_player(player_id):
            raise InvalidResult(
                f"Player {player_id} is not in match {self.id}",
                match_id=self.id,
                player_id=player_id,
            )
        now = now or utc_now()
        self.last_activity[player_id] = now
        if self.status == "scheduled":
            self.status = "ongoing"
            self.started_at = now

    def complete(
        self,
        winner_id: str,
        scores: Optional[dict[str, int]] = None,
        *,
        forfeited: bool = False,
        now: Optional[datetime] = None,
    ) -> MatchResult:
        """
        Store the final result.

        Raises:
            AlreadyReported: the match already has a result
            InvalidResult: the winner or a scored player is not a participant,
                or a score is negative
        """
        if self.is_completed:
            raise AlreadyReported(f"Match {self.id} is already {self.status}", match_id=self.id)
        if not self.has_player(winner_id):
            raise InvalidResult(
                f"Winner {winner_id} is not a participant of match {self.id}",
                match_id=self.id,
                winner_id=winner_id,
            )
        scores = dict(scores or {})
        for player_id, score in scores.items():
            if not self.has_player(player_id):
                raise InvalidResult(
                    f"Score reported for non-participant {player_id}",
                    match_id=self.id,
                    player_id=player_id,
                )
            if score < 0:
                raise InvalidResult(
                    f"Negative score for {player_id}", match_id=self.id, player_id=player_id
                )

        self.result = MatchResult(winner_id=winner_id, scores=scores, forfeited=forfeited)
        self.status = "forfeited" if forfeited else "completed"
        self.completed_at = now or utc_now()
        return self.result

    def duration_seconds(self) -> int:
        start = self.started_at or self.created_at
        if self.completed_at is None:
            return 0
        return max(int((self.completed_at - start).total_seconds()), 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "mode": self.mode,
            "player_ids": list(self.player_ids),
            "status": self.status,
            "tournament_id": self.tournament_id,
            "round_number": self.round_number,
            "round_code": self.round_code,
            "winner_id": self.winner_id,
            "scores": dict(self.result.scores) if self.result else {},
            "forfeited": bool(self.result and self.result.forfeited),
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self) -> str:
        return f"<Match(id={self.id[:8]}, players={list(self.player_ids)}, status='{self.status}')>"
