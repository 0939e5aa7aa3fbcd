"""
Rank and rating constants.

Two ladders are in use:

Rating tiers (Bronze -> Legend) are a step function of the numeric rating
and drive matchmaking badges and the leaderboard.

Career ranks (Novice -> Legend) reward long-term play: they need both a
level and a win count, so a lucky streak alone cannot jump a player up.

Both ladders are ordered from the top down; the first row a player
satisfies wins, and the last row always matches so every input gets a rank.
"""

# (tier name, minimum rating), highest first
RATING_TIERS: tuple[tuple[str, int], ...] = (
    ("legend", 5000),
    ("master", 3500),
    ("diamond", 2000),
    ("platinum", 1000),
    ("gold", 500),
    ("silver", 250),
    ("bronze", 0),
)

# (rank name, minimum level, minimum wins), highest first
CAREER_RANKS: tuple[tuple[str, int, int], ...] = (
    ("Legend", 20, 100),
    ("Master", 15, 50),
    ("Elite", 10, 25),
    ("Pro", 5, 10),
    ("Amateur", 3, 5),
    ("Novice", 0, 0),
)

# Points per win and the score divisor in the rating formula
RATING_POINTS_PER_WIN = 25
RATING_SCORE_DIVISOR = 100

# A streak at or above this length is flagged as "on fire"
STREAK_THRESHOLD = 5

# XP awarded per game before the difficulty multiplier
XP_WIN_BASE = 100
XP_LOSS_BASE = 25
XP_SCORE_DIVISOR = 10

# First level-up costs this much XP; every later level costs this much more
XP_LEVEL_STEP = 500

DIFFICULTY_MULTIPLIERS: dict[str, float] = {
    "easy": 0.5,
    "normal": 1.0,
    "hard": 1.5,
    "extreme": 2.0,
}
