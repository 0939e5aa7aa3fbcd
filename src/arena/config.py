"""
Configuration management for Arena.

Uses Pydantic Settings to load configuration from environment variables
with sensible defaults for development. Every tunable of the matchmaking
and tournament engine lives here so operators can change roster bounds,
timeouts and pairing behaviour without a code change.

Usage:
    from arena.config import settings
    print(settings.match_timeout_seconds)
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

KNOWN_BRACKET_TYPES = ("single_elimination", "double_elimination", "round_robin")
KNOWN_SEEDING_METHODS = ("manual", "ranked", "random")

# Hard limits on roster size; configured bounds must sit inside them
ROSTER_FLOOR = 2
ROSTER_CEILING = 64


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables can be set directly or via a .env file
    in the project root directory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ==========================================================================
    # Database Configuration
    # ==========================================================================

    database_url: str = Field(
        default="sqlite:///arena.db",
        description="SQLAlchemy connection URL for the persistence store",
    )
    db_pool_size: int = Field(
        default=5,
        description="Number of connections to keep in the pool (ignored for SQLite)",
    )
    db_max_overflow: int = Field(
        default=10,
        description="Max additional connections beyond pool_size (ignored for SQLite)",
    )
    persist_max_attempts: int = Field(
        default=3,
        description="How many times a failed write is retried before giving up",
    )

    # ==========================================================================
    # Tournament Configuration
    # ==========================================================================

    roster_min_size: int = Field(
        default=ROSTER_FLOOR,
        description="Minimum number of players needed to start a tournament",
    )
    roster_max_size: int = Field(
        default=ROSTER_CEILING,
        description="Maximum number of players allowed in a tournament roster",
    )
    bracket_types: list[str] = Field(
        default_factory=lambda: list(KNOWN_BRACKET_TYPES),
        description="Bracket formats that tournaments may be created with",
    )
    default_bracket_type: str = Field(
        default="single_elimination",
        description="Bracket format used when a request does not name one",
    )
    default_seeding_method: str = Field(
        default="manual",
        description="Seeding used when a request does not name one: manual, ranked or random",
    )
    auto_start_delay_seconds: float = Field(
        default=5.0,
        description="Delay between a roster reaching minimum size and the automatic start",
    )
    match_timeout_seconds: float = Field(
        default=1800.0,
        description="A tournament match older than this is forfeited by the sweep (30 min)",
    )
    sweep_interval_seconds: float = Field(
        default=1.0,
        description="How often background tasks re-evaluate timeouts and pairing",
    )
    closed_retention_seconds: float = Field(
        default=3600.0,
        description="How long closed tournaments and finished standalone matches stay in memory",
    )

    # ==========================================================================
    # Rating Configuration
    # ==========================================================================

    rating_update_interval_seconds: float = Field(
        default=60.0,
        description="Minimum time between leaderboard recomputations",
    )

    # ==========================================================================
    # Matchmaking Configuration
    # ==========================================================================

    game_modes: list[str] = Field(
        default_factory=lambda: ["pong", "arkanoid"],
        description="Game modes players may queue for",
    )
    players_per_match: int = Field(
        default=2,
        description="Players needed to form a match unless the mode overrides it",
    )
    mode_player_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Per-mode override of players_per_match, e.g. {'ffa': 4}",
    )
    queue_entry_ttl_seconds: float = Field(
        default=300.0,
        description="Queue entries expire this long after joining (5 min)",
    )
    queue_min_rating: int = Field(
        default=0,
        description="Default lower rating bound accepted by a queue entry",
    )
    queue_max_rating: int = Field(
        default=9999,
        description="Default upper rating bound accepted by a queue entry",
    )
    skill_matching_enabled: bool = Field(
        default=False,
        description="Pair by rating band instead of pure first-come first-served",
    )
    skill_tolerance_base: float = Field(
        default=100.0,
        description="Rating difference accepted immediately after joining",
    )
    skill_tolerance_growth_per_second: float = Field(
        default=2.0,
        description="How fast the accepted rating difference widens while waiting",
    )
    skill_tolerance_max: Optional[float] = Field(
        default=1000.0,
        description="Cap on the widening band (None = unbounded)",
    )

    # ==========================================================================
    # Logging Configuration
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    # ==========================================================================
    # Validators
    # ==========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return upper_v

    @field_validator("bracket_types")
    @classmethod
    def validate_bracket_types(cls, v: list[str]) -> list[str]:
        unknown = [t for t in v if t not in KNOWN_BRACKET_TYPES]
        if unknown:
            raise ValueError(f"Unknown bracket types: {unknown}")
        if not v:
            raise ValueError("At least one bracket type must be enabled")
        return v

    @field_validator("default_seeding_method")
    @classmethod
    def validate_seeding_method(cls, v: str) -> str:
        if v not in KNOWN_SEEDING_METHODS:
            raise ValueError(f"default_seeding_method must be one of {KNOWN_SEEDING_METHODS}")
        return v

    @model_validator(mode="after")
    def validate_roster_bounds(self) -> "Settings":
        """Roster bounds must satisfy 2 <= min <= max <= 64."""
        if not ROSTER_FLOOR <= self.roster_min_size <= self.roster_max_size <= ROSTER_CEILING:
            raise ValueError(
                f"Roster bounds must satisfy {ROSTER_FLOOR} <= min <= max <= {ROSTER_CEILING}, "
                f"got min={self.roster_min_size} max={self.roster_max_size}"
            )
        if self.default_bracket_type not in self.bracket_types:
            raise ValueError(
                f"default_bracket_type '{self.default_bracket_type}' is not an enabled bracket type"
            )
        return self

    def match_size_for(self, mode: str) -> int:
        """Number of players that make up one match in ``mode``."""
        return self.mode_player_counts.get(mode, self.players_per_match)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures we only load settings once,
    which is important because loading from .env can be slow.
    """
    return Settings()


# Convenience alias for importing
settings = get_settings()
