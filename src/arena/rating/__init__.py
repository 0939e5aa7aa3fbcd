"""
Rating module.

Implements the player statistics formulas:
- Win rate and average score (safe with zero games)
- Numeric rating and level
- Rating tiers (Bronze -> Legend) and career ranks (Novice -> Legend)
- XP gain and XP level
- The ledger that applies finished games to player records
"""

from arena.rating.calculator import (
    DerivedStats,
    apply_game_result,
    calculate_level,
    calculate_rating,
    calculate_xp_gain,
    career_rank,
    compute_derived_stats,
    level_from_xp,
    rating_tier,
)
from arena.rating.ledger import PlayerLedger

__all__ = [
    "DerivedStats",
    "PlayerLedger",
    "apply_game_result",
    "calculate_level",
    "calculate_rating",
    "calculate_xp_gain",
    "career_rank",
    "compute_derived_stats",
    "level_from_xp",
    "rating_tier",
]
