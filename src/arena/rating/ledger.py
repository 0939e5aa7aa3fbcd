"""Player ledger: the single writer of player stats after each game."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, Optional

from arena.config import Settings, get_settings
from arena.models import Match, Player, utc_now
from arena.rating.calculator import apply_game_result, compute_derived_stats

logger = logging.getLogger(__name__)


class PlayerLedger:
    """
    Holds the current Player records and applies game results to them.

    Every stats mutation goes through ``record_match`` under one lock, so two
    results reported at the same time for the same player are applied one
    after the other, never interleaved.

    The leaderboard is recomputed at most once per
    ``settings.rating_update_interval_seconds``; reads in between may be
    slightly stale.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._players: dict[str, Player] = {}
        self._lock = threading.Lock()
        self._leaderboard: list[Player] = []
        self._leaderboard_at: Optional[datetime] = None

    def load(self, players: Iterable[Player]) -> None:
        """Hydrate the ledger from persisted players (startup only)."""
        with self._lock:
            for player in players:
                self._players[player.id] = player
            self._leaderboard_at = None

    def ensure(self, player_id: str, name: Optional[str] = None) -> Player:
        """Return the player, creating a fresh record on first sight."""
        with self._lock:
            player = self._players.get(player_id)
            if player is None:
                player = Player(id=player_id, name=name)
                self._players[player_id] = player
            elif name and not player.name:
                player.name = name
            return player

    def get(self, player_id: str) -> Optional[Player]:
        return self._players.get(player_id)

    def rating_of(self, player_id: str) -> int:
        player = self._players.get(player_id)
        return player.rating if player else 0

    def ratings(self, player_ids: Iterable[str]) -> dict[str, int]:
        return {player_id: self.rating_of(player_id) for player_id in player_ids}

    def record_match(self, match: Match, difficulty: str = "normal") -> list[Player]:
        """
        Fold a finished match into every participant's stats.

        Returns:
            Updated Player records, in the match's player order
        """
        if match.result is None:
            raise ValueError(f"Match {match.id} has no result to record")

        duration = match.duration_seconds()
        updated: list[Player] = []
        with self._lock:
            for player_id in match.player_ids:
                player = self._players.get(player_id) or Player(id=player_id)
                won = player_id == match.result.winner_id
                stats = apply_game_result(
                    player.stats,
                    won=won,
                    score=match.result.score_for(player_id),
                    duration_seconds=duration,
                    difficulty=difficulty,
                )
                derived = compute_derived_stats(stats)
                player = replace(
                    player,
                    stats=stats,
                    rating=derived.rating,
                    level=derived.level,
                    rank_tier=derived.rank_tier,
                    career_rank=derived.career_rank,
                    updated_at=utc_now(),
                )
                self._players[player_id] = player
                updated.append(player)

        logger.debug(
            "Recorded match %s: %s",
            match.id,
            ", ".join(f"{p.id}={p.rating}" for p in updated),
        )
        return updated

    def leaderboard(self, limit: int = 10, now: Optional[datetime] = None) -> list[Player]:
        """Top players by rating (ties: more wins, then id)."""
        now = now or utc_now()
        interval = timedelta(seconds=self.settings.rating_update_interval_seconds)
        with self._lock:
            if self._leaderboard_at is None or now - self._leaderboard_at >= interval:
                self._leaderboard = sorted(
                    self._players.values(),
                    key=lambda p: (-p.rating, -p.stats.wins, p.id),
                )
                self._leaderboard_at = now
            return list(self._leaderboard[:limit])

    def __len__(self) -> int:
        return len(self._players)
