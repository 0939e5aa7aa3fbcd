"""
Matchmaking module.

- MatchmakingQueue: per-mode FIFO queue with one active entry per player
- Compatibility predicates: first-come first-served or widening skill band
"""

from arena.matchmaking.compat import (
    Compatibility,
    SkillBand,
    always_compatible,
    compatibility_from_settings,
    within_bounds,
)
from arena.matchmaking.queue import MatchmakingQueue

__all__ = [
    "Compatibility",
    "MatchmakingQueue",
    "SkillBand",
    "always_compatible",
    "compatibility_from_settings",
    "within_bounds",
]
