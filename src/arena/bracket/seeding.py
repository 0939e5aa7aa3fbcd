"""
Roster seeding.

Seeding decides the order players are laid into a bracket:

- manual: roster order as given (organiser already ordered it)
- ranked: highest rating first; equal ratings keep roster order
- random: shuffled with the supplied RNG (pass a seeded Random for
  reproducible draws)

Elimination brackets then pad the seeded list with byes up to the next
power of two. Byes go at the end of the list, so the lowest seeds are the
ones who skip a round.
"""

from __future__ import annotations

import random
from typing import Optional, Sequence

from arena.bracket.positions import next_power_of_two
from arena.config import KNOWN_SEEDING_METHODS
from arena.errors import InvalidRequest


def seed_roster(
    roster: Sequence[str],
    method: str = "manual",
    ratings: Optional[dict[str, int]] = None,
    rng: Optional[random.Random] = None,
) -> list[str]:
    """
    Order a roster according to a seeding method.

    Raises:
        InvalidRequest: If the method is unknown
    """
    if method not in KNOWN_SEEDING_METHODS:
        raise InvalidRequest(f"Unknown seeding method: {method}", seeding=method)

    seeded = list(roster)
    if method == "ranked":
        ratings = ratings or {}
        order = {player_id: i for i, player_id in enumerate(seeded)}
        seeded.sort(key=lambda p: (-ratings.get(p, 0), order[p]))
    elif method == "random":
        (rng or random.Random()).shuffle(seeded)
    return seeded


def pad_with_byes(seeded: Sequence[str]) -> list[Optional[str]]:
    """
    Extend a seeded list to the next power of two with byes (None).

    Examples:
        >>> pad_with_byes(["A", "B", "C"])
        ['A', 'B', 'C', None]
    """
    size = next_power_of_two(len(seeded))
    return list(seeded) + [None] * (size - len(seeded))
