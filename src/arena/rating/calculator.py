"""
Rating calculator for player statistics.

Maps a player's cumulative counters to the values shown on profiles and
used by skill-aware matchmaking:

  win_rate      = round(100 * wins / games_played)      (0 with no games)
  average_score = round(total_score / games_played)     (0 with no games)
  rating        = wins * 25 + floor(total_score / 100)
  level         = floor(sqrt(wins + 1))

Rounding is half-up. Every function here is pure and total over
non-negative integers: no division by zero, no error conditions. Callers
persist whatever they compute.
"""

from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal
from math import isqrt

from arena.models import PlayerStats
from arena.rating.constants import (
    CAREER_RANKS,
    DIFFICULTY_MULTIPLIERS,
    RATING_POINTS_PER_WIN,
    RATING_SCORE_DIVISOR,
    RATING_TIERS,
    STREAK_THRESHOLD,
    XP_LEVEL_STEP,
    XP_LOSS_BASE,
    XP_SCORE_DIVISOR,
    XP_WIN_BASE,
)


@dataclass(frozen=True)
class DerivedStats:
    """Values derived from PlayerStats. Recomputed after every game."""
    win_rate: int
    average_score: int
    rating: int
    level: int
    is_on_streak: bool
    rank_tier: str
    career_rank: str


def _ratio_half_up(numerator: int, denominator: int) -> int:
    """round(numerator / denominator) with halves rounded up; 0 if denominator is 0."""
    if denominator <= 0:
        return 0
    return (2 * numerator + denominator) // (2 * denominator)


def calculate_win_rate(wins: int, games_played: int) -> int:
    """Win percentage, 0-100."""
    return _ratio_half_up(100 * wins, games_played)


def calculate_average_score(total_score: int, games_played: int) -> int:
    return _ratio_half_up(total_score, games_played)


def calculate_rating(wins: int, total_score: int) -> int:
    """
    Numeric rating used for tiers and skill-aware pairing.

    Examples:
        >>> calculate_rating(10, 2500)
        275
    """
    return wins * RATING_POINTS_PER_WIN + total_score // RATING_SCORE_DIVISOR


def calculate_level(wins: int) -> int:
    """
    Examples:
        >>> calculate_level(0)
        1
        >>> calculate_level(10)
        3
    """
    return isqrt(wins + 1)


def rating_tier(rating: int) -> str:
    """Bronze -> Legend tier for a numeric rating (monotone step function)."""
    for name, minimum in RATING_TIERS:
        if rating >= minimum:
            return name
    return RATING_TIERS[-1][0]


def career_rank(level: int, wins: int) -> str:
    """Novice -> Legend career rank; both thresholds of a row must be met."""
    for name, min_level, min_wins in CAREER_RANKS:
        if level >= min_level and wins >= min_wins:
            return name
    return CAREER_RANKS[-1][0]


def compute_derived_stats(stats: PlayerStats) -> DerivedStats:
    """
    Derive profile values from cumulative stats.

    Args:
        stats: Cumulative counters (non-negative)

    Returns:
        DerivedStats with win rate, average score, rating, level,
        streak flag, rating tier and career rank.

    Example:
        derived = compute_derived_stats(PlayerStats(games_played=20, wins=10, total_score=2500))
        # derived.rating == 275, derived.level == 3, derived.win_rate == 50
    """
    rating = calculate_rating(stats.wins, stats.total_score)
    level = calculate_level(stats.wins)
    return DerivedStats(
        win_rate=calculate_win_rate(stats.wins, stats.games_played),
        average_score=calculate_average_score(stats.total_score, stats.games_played),
        rating=rating,
        level=level,
        is_on_streak=stats.current_streak >= STREAK_THRESHOLD,
        rank_tier=rating_tier(rating),
        career_rank=career_rank(level, stats.wins),
    )


def calculate_xp_gain(won: bool, difficulty: str, game_score: int) -> int:
    """
    XP earned from one game.

    (base + floor(score / 10)) * difficulty multiplier, rounded half-up.
    Unknown difficulties count as 'normal'.
    """
    base = XP_WIN_BASE if won else XP_LOSS_BASE
    multiplier = Decimal(str(DIFFICULTY_MULTIPLIERS.get(difficulty, 1.0)))
    total = (base + max(game_score, 0) // XP_SCORE_DIVISOR) * multiplier
    return int(total.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def level_from_xp(total_xp: int) -> int:
    """
    XP level: level 2 at 500 XP, level 3 at 1500, level 4 at 3000, ...

    Examples:
        >>> level_from_xp(0)
        1
        >>> level_from_xp(500)
        2
        >>> level_from_xp(1499)
        2
    """
    level = 1
    xp_needed = XP_LEVEL_STEP
    cumulative = 0
    while cumulative + xp_needed <= total_xp:
        cumulative += xp_needed
        level += 1
        xp_needed += XP_LEVEL_STEP
    return level


def apply_game_result(
    stats: PlayerStats,
    won: bool,
    score: int = 0,
    duration_seconds: int = 0,
    difficulty: str = "normal",
) -> PlayerStats:
    """
    Return new stats with one finished game folded in.

    A win extends the current streak (and the best streak if it is passed);
    a loss resets the current streak to zero.

    Raises:
        ValueError: If score or duration is negative
    """
    if score < 0 or duration_seconds < 0:
        raise ValueError(
            f"score and duration must be non-negative, got score={score} duration={duration_seconds}"
        )

    current_streak = stats.current_streak + 1 if won else 0
    return replace(
        stats,
        games_played=stats.games_played + 1,
        wins=stats.wins + (1 if won else 0),
        losses=stats.losses + (0 if won else 1),
        total_score=stats.total_score + score,
        current_streak=current_streak,
        best_streak=max(stats.best_streak, current_streak),
        play_time_seconds=stats.play_time_seconds + duration_seconds,
        xp=stats.xp + calculate_xp_gain(won, difficulty, score),
    )
