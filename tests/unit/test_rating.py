"""
Unit tests for the rating calculator and player ledger.

Tests the derivation rules to ensure:
- Ratios round half-up and never divide by zero
- Tiers and career ranks are monotone step functions
- XP and streaks accumulate correctly across games
- The ledger applies every participant's result exactly once
"""

import threading

import pytest

from arena.models import Match, Player, PlayerStats
from arena.rating.calculator import (
    apply_game_result,
    calculate_average_score,
    calculate_level,
    calculate_rating,
    calculate_win_rate,
    calculate_xp_gain,
    career_rank,
    compute_derived_stats,
    level_from_xp,
    rating_tier,
)
from arena.rating.ledger import PlayerLedger


class TestCalculator:
    """Tests for the pure derivation functions."""

    def test_no_games_gives_zero_ratios(self):
        assert calculate_win_rate(0, 0) == 0
        assert calculate_average_score(0, 0) == 0

    def test_win_rate_rounds_half_up(self):
        assert calculate_win_rate(1, 8) == 13  # 12.5
        assert calculate_win_rate(1, 3) == 33
        assert calculate_win_rate(2, 3) == 67
        assert calculate_win_rate(5, 5) == 100

    def test_average_score_rounds_half_up(self):
        assert calculate_average_score(5, 2) == 3  # 2.5
        assert calculate_average_score(7, 3) == 2

    def test_rating_formula(self):
        assert calculate_rating(10, 2500) == 275
        assert calculate_rating(0, 99) == 0
        assert calculate_rating(1, 100) == 26

    def test_level_is_integer_sqrt(self):
        assert calculate_level(0) == 1
        assert calculate_level(2) == 1
        assert calculate_level(3) == 2
        assert calculate_level(10) == 3

    @pytest.mark.parametrize(
        "rating,tier",
        [
            (0, "bronze"),
            (249, "bronze"),
            (250, "silver"),
            (499, "silver"),
            (500, "gold"),
            (1000, "platinum"),
            (2000, "diamond"),
            (3500, "master"),
            (5000, "legend"),
            (99999, "legend"),
        ],
    )
    def test_rating_tier_boundaries(self, rating, tier):
        assert rating_tier(rating) == tier

    def test_rating_tier_is_monotone(self):
        order = ["bronze", "silver", "gold", "platinum", "diamond", "master", "legend"]
        tiers = [order.index(rating_tier(r)) for r in range(0, 6000, 50)]
        assert tiers == sorted(tiers)

    def test_career_rank_needs_both_thresholds(self):
        assert career_rank(level=3, wins=5) == "Amateur"
        assert career_rank(level=10, wins=24) == "Pro"
        assert career_rank(level=2, wins=100) == "Novice"
        assert career_rank(level=20, wins=100) == "Legend"

    def test_compute_derived_stats(self):
        derived = compute_derived_stats(
            PlayerStats(games_played=20, wins=10, losses=10, total_score=2500, current_streak=5)
        )

        assert derived.rating == 275
        assert derived.level == 3
        assert derived.win_rate == 50
        assert derived.average_score == 125
        assert derived.is_on_streak is True
        assert derived.rank_tier == "silver"
        assert derived.career_rank == "Amateur"

    def test_xp_gain(self):
        assert calculate_xp_gain(True, "normal", 110) == 111
        assert calculate_xp_gain(False, "easy", 0) == 13  # 12.5 rounds up
        assert calculate_xp_gain(True, "hard", 0) == 150
        assert calculate_xp_gain(True, "unknown", 0) == 100

    @pytest.mark.parametrize(
        "xp,level",
        [(0, 1), (499, 1), (500, 2), (1499, 2), (1500, 3), (2999, 3), (3000, 4)],
    )
    def test_level_from_xp(self, xp, level):
        assert level_from_xp(xp) == level


class TestApplyGameResult:
    """Tests for folding one game into cumulative stats."""

    def test_win_extends_streak(self):
        stats = PlayerStats(games_played=3, wins=2, current_streak=2, best_streak=2)
        after = apply_game_result(stats, won=True, score=30, duration_seconds=60)

        assert after.games_played == 4
        assert after.wins == 3
        assert after.losses == 0
        assert after.current_streak == 3
        assert after.best_streak == 3
        assert after.total_score == 30
        assert after.play_time_seconds == 60
        # Input is left untouched
        assert stats.wins == 2

    def test_loss_resets_streak_but_keeps_best(self):
        stats = PlayerStats(games_played=4, wins=4, current_streak=4, best_streak=4)
        after = apply_game_result(stats, won=False)

        assert after.current_streak == 0
        assert after.best_streak == 4
        assert after.losses == 1

    def test_negative_score_rejected(self):
        with pytest.raises(ValueError):
            apply_game_result(PlayerStats(), won=True, score=-1)


class TestPlayerLedger:
    """Tests for PlayerLedger."""

    @pytest.fixture
    def ledger(self, settings):
        return PlayerLedger(settings)

    @pytest.fixture
    def finished_match(self):
        match = Match(mode="pong", player_ids=("alice", "bob"))
        match.complete("alice", {"alice": 11, "bob": 7})
        return match

    def test_ensure_creates_once(self, ledger):
        first = ledger.ensure("alice", "Alice")
        second = ledger.ensure("alice")

        assert first is second
        assert second.name == "Alice"
        assert len(ledger) == 1

    def test_record_match_updates_both_players(self, ledger, finished_match):
        winner, loser = ledger.record_match(finished_match)

        assert winner.id == "alice"
        assert winner.stats.wins == 1
        assert winner.stats.total_score == 11
        assert winner.rating == 25
        assert winner.stats.xp == 101

        assert loser.id == "bob"
        assert loser.stats.losses == 1
        assert loser.stats.current_streak == 0
        assert loser.rating == 0
        assert loser.stats.xp == 25

        assert ledger.rating_of("alice") == 25
        assert ledger.ratings(["alice", "bob", "carol"]) == {"alice": 25, "bob": 0, "carol": 0}

    def test_record_match_requires_result(self, ledger):
        with pytest.raises(ValueError):
            ledger.record_match(Match(mode="pong", player_ids=("alice", "bob")))

    def test_concurrent_results_are_not_lost(self, ledger):
        """Twenty results for the same player from different threads all count."""
        matches = []
        for i in range(20):
            match = Match(mode="pong", player_ids=("alice", f"opponent-{i}"))
            match.complete("alice")
            matches.append(match)

        threads = [threading.Thread(target=ledger.record_match, args=(m,)) for m in matches]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        alice = ledger.get("alice")
        assert alice.stats.games_played == 20
        assert alice.stats.wins == 20
        assert alice.stats.best_streak == 20

    def test_leaderboard_orders_by_rating_then_wins(self, ledger):
        ledger.load(
            [
                Player(id="low", rating=10, stats=PlayerStats(wins=0)),
                Player(id="high", rating=300),
                Player(id="tied-more-wins", rating=100, stats=PlayerStats(wins=4)),
                Player(id="tied-fewer-wins", rating=100, stats=PlayerStats(wins=2)),
            ]
        )

        board = ledger.leaderboard(limit=3)

        assert [p.id for p in board] == ["high", "tied-more-wins", "tied-fewer-wins"]
