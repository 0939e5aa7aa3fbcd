"""
Round-robin scheduling and standings.

Scheduling uses the circle method: fix the first player, rotate everyone
else one place per round. With n players (n even) that gives n-1 rounds in
which every pair meets exactly once and nobody plays twice in a round. An
odd roster gets a phantom player; whoever is paired with it sits out.

Standings also serve elimination brackets, which only need the tally.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from arena.models import Match


def circle_rounds(seeded: Sequence[str]) -> list[list[tuple[str, str]]]:
    """
    Pair every player with every other player exactly once.

    Returns:
        One list of (player, player) pairs per round

    Examples:
        >>> circle_rounds(["A", "B", "C", "D"])
        [[('A', 'D'), ('B', 'C')], [('A', 'C'), ('D', 'B')], [('A', 'B'), ('C', 'D')]]
    """
    players: list[Optional[str]] = list(seeded)
    if len(players) % 2:
        players.append(None)

    n = len(players)
    rounds = []
    for _ in range(n - 1):
        pairs = []
        for i in range(n // 2):
            a, b = players[i], players[n - 1 - i]
            if a is not None and b is not None:
                pairs.append((a, b))
        rounds.append(pairs)
        players = [players[0], players[-1], *players[1:-1]]
    return rounds


@dataclass
class Standing:
    """One player's line in a results table."""

    player_id: str
    seed: int
    played: int = 0
    wins: int = 0
    losses: int = 0
    points_for: int = 0
    points_against: int = 0

    @property
    def score_differential(self) -> int:
        return self.points_for - self.points_against

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "seed": self.seed,
            "played": self.played,
            "wins": self.wins,
            "losses": self.losses,
            "points_for": self.points_for,
            "points_against": self.points_against,
            "score_differential": self.score_differential,
        }


def tally(seeds: Sequence[str], matches: Iterable[Match]) -> dict[str, Standing]:
    """Accumulate wins, losses and points from every finished match."""
    table = {player_id: Standing(player_id=player_id, seed=i) for i, player_id in enumerate(seeds)}
    for match in matches:
        if not match.is_completed:
            continue
        result = match.result
        for player_id in match.player_ids:
            row = table[player_id]
            row.played += 1
            if player_id == result.winner_id:
                row.wins += 1
            else:
                row.losses += 1
            row.points_for += result.score_for(player_id)
            row.points_against += sum(
                result.score_for(other) for other in match.player_ids if other != player_id
            )
    return table


def _head_to_head_wins(player_id: str, group: set[str], matches: Iterable[Match]) -> int:
    wins = 0
    for match in matches:
        if not match.is_completed or match.winner_id != player_id:
            continue
        if any(other in group for other in match.loser_ids):
            wins += 1
    return wins


def rank_round_robin(seeds: Sequence[str], matches: Sequence[Match]) -> list[Standing]:
    """
    Order a round-robin table.

    Most wins first. Players level on wins are separated by wins against
    each other, then by score differential, then by seed.
    """
    table = tally(seeds, matches)

    by_wins: dict[int, list[Standing]] = defaultdict(list)
    for row in table.values():
        by_wins[row.wins].append(row)

    ordered: list[Standing] = []
    for wins in sorted(by_wins, reverse=True):
        group = by_wins[wins]
        ids = {row.player_id for row in group}
        h2h = {row.player_id: _head_to_head_wins(row.player_id, ids, matches) for row in group}
        group.sort(key=lambda row: (-h2h[row.player_id], -row.score_differential, row.seed))
        ordered.extend(group)
    return ordered
