"""
Bracket module.

Builds and advances tournament structures:
- Single elimination with byes
- Double elimination with losers bracket, grand final and reset
- Round robin (circle method) with deterministic standings
"""

from arena.bracket.engine import BracketEngine, BracketUpdate, validate_roster
from arena.bracket.nodes import BracketNode
from arena.bracket.round_robin import Standing, circle_rounds, rank_round_robin
from arena.bracket.seeding import pad_with_byes, seed_roster

__all__ = [
    "BracketEngine",
    "BracketNode",
    "BracketUpdate",
    "Standing",
    "circle_rounds",
    "pad_with_byes",
    "rank_round_robin",
    "seed_roster",
    "validate_roster",
]
