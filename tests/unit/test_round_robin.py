"""
Unit tests for round-robin scheduling and standings.

Tests ensure:
- Every pair meets exactly once and nobody plays twice in a round
- Odd rosters get a sit-out each round
- Standings break ties by head-to-head, score differential, then seed
"""

from itertools import combinations

import pytest

from arena.bracket import BracketEngine, circle_rounds


def test_circle_rounds_four_players():
    assert circle_rounds(["A", "B", "C", "D"]) == [
        [("A", "D"), ("B", "C")],
        [("A", "C"), ("D", "B")],
        [("A", "B"), ("C", "D")],
    ]


@pytest.mark.parametrize("size", [2, 3, 4, 5, 7, 8])
def test_every_pair_meets_once(size):
    players = [f"P{i}" for i in range(size)]
    rounds = circle_rounds(players)

    pairs = [frozenset(pair) for round_pairs in rounds for pair in round_pairs]
    assert len(pairs) == len(set(pairs))
    assert set(pairs) == {frozenset(c) for c in combinations(players, 2)}

    for round_pairs in rounds:
        seen = [p for pair in round_pairs for p in pair]
        assert len(seen) == len(set(seen))


def test_odd_roster_sits_one_player_out_per_round():
    rounds = circle_rounds(["A", "B", "C", "D", "E"])

    assert len(rounds) == 5
    assert all(len(round_pairs) == 2 for round_pairs in rounds)


class TestRoundRobinBracket:
    """Tests for round robin through the bracket engine."""

    @pytest.fixture
    def engine(self, settings):
        engine = BracketEngine(tournament_id="t-rr", settings=settings)
        engine.build(["A", "B", "C", "D"], "round_robin")
        return engine

    def play(self, engine, winner, loser, winner_score=11, loser_score=9):
        for match in engine.pending_matches():
            if set(match.player_ids) == {winner, loser}:
                return engine.report_result(
                    match.id, winner, {winner: winner_score, loser: loser_score}
                )
        raise AssertionError(f"No pending match between {winner} and {loser}")

    def test_all_fixtures_scheduled_at_build(self, engine):
        assert len(engine.matches) == 6
        assert engine.bye_count == 0
        assert [code for code, _ in engine.rounds()] == ["RR1", "RR2", "RR3"]

    def test_completes_after_last_fixture(self, engine):
        self.play(engine, "A", "B")
        self.play(engine, "A", "C")
        self.play(engine, "D", "A")
        self.play(engine, "B", "C")
        self.play(engine, "B", "D")
        assert not engine.is_complete()

        update = self.play(engine, "C", "D")

        assert update.completed
        # A and B both have two wins; A beat B
        assert [s.player_id for s in engine.standings()] == ["A", "B", "C", "D"]
        assert update.champion_id == "A"
        assert engine.eliminated == []

    def test_three_way_tie_falls_to_score_differential(self, engine):
        self.play(engine, "A", "B")
        self.play(engine, "B", "C")
        self.play(engine, "C", "A", 11, 0)
        self.play(engine, "A", "D")
        self.play(engine, "B", "D")
        self.play(engine, "C", "D")

        standings = engine.standings()
        assert [s.player_id for s in standings] == ["C", "B", "A", "D"]
        assert standings[0].score_differential == 11
        assert standings[0].wins == 2
        assert standings[-1].losses == 3

    def test_full_tie_falls_to_seed(self, engine):
        self.play(engine, "A", "B", 5, 5)
        self.play(engine, "B", "C", 5, 5)
        self.play(engine, "C", "A", 5, 5)
        self.play(engine, "A", "D", 5, 5)
        self.play(engine, "B", "D", 5, 5)
        self.play(engine, "C", "D", 5, 5)

        assert [s.player_id for s in engine.standings()] == ["A", "B", "C", "D"]
        assert engine.champion() == "A"
