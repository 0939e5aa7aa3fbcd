"""Unit tests for settings validation."""

import pytest
from pydantic import ValidationError

from arena.config import Settings


def test_defaults():
    settings = Settings()

    assert settings.roster_min_size == 2
    assert settings.roster_max_size == 64
    assert settings.default_bracket_type == "single_elimination"
    assert settings.match_size_for("pong") == 2


def test_log_level_is_normalised():
    assert Settings(log_level="debug").log_level == "DEBUG"
    with pytest.raises(ValidationError):
        Settings(log_level="chatty")


@pytest.mark.parametrize(
    "bounds",
    [
        {"roster_min_size": 1},
        {"roster_max_size": 65},
        {"roster_min_size": 10, "roster_max_size": 8},
    ],
)
def test_roster_bounds(bounds):
    with pytest.raises(ValidationError):
        Settings(**bounds)


def test_bracket_types():
    with pytest.raises(ValidationError):
        Settings(bracket_types=["swiss"])
    with pytest.raises(ValidationError):
        Settings(bracket_types=["round_robin"])  # default type no longer enabled

    settings = Settings(bracket_types=["round_robin"], default_bracket_type="round_robin")
    assert settings.bracket_types == ["round_robin"]


def test_mode_player_count_override():
    settings = Settings(mode_player_counts={"ffa": 4})

    assert settings.match_size_for("ffa") == 4
    assert settings.match_size_for("pong") == 2
