"""
Unit tests for the request-facing service.

Covers request validation, standalone and tournament results, deferred
event delivery and hydration from storage on restart.
"""

import random
from datetime import timedelta

import pytest

from arena.errors import AlreadyReported, InvalidRequest, TournamentClosed, UnknownMatch
from arena.service import ArenaService


@pytest.fixture
def service(settings, store):
    service = ArenaService(settings, store=store, rng=random.Random(1))
    service.startup()
    yield service
    service.shutdown()


class TestRequests:
    """Validation of raw payloads."""

    def test_invalid_payload(self, service):
        with pytest.raises(InvalidRequest) as excinfo:
            service.join_queue({"player_id": "", "mode": "pong"})
        assert excinfo.value.context["errors"][0]["loc"] == "player_id"

    def test_unknown_field_rejected(self, service):
        with pytest.raises(InvalidRequest):
            service.join_queue({"player_id": "alice", "mode": "pong", "priority": 1})

    def test_inverted_rating_bounds(self, service):
        with pytest.raises(InvalidRequest):
            service.join_queue({"player_id": "alice", "mode": "pong", "min_rating": 10, "max_rating": 5})

    def test_negative_score(self, service):
        with pytest.raises(InvalidRequest):
            service.report_match_result({"match_id": "m", "winner_id": "a", "scores": {"a": -1}})


class TestStandaloneMatches:
    """Queue matches reported through the service."""

    @pytest.fixture
    def match(self, service):
        service.join_queue({"player_id": "alice", "mode": "pong", "name": "Alice"})
        return service.join_queue({"player_id": "bob", "mode": "pong"})["match"]

    def test_join_returns_match(self, match):
        assert match["player_ids"] == ["alice", "bob"]
        assert match["status"] == "scheduled"

    def test_report_result(self, service, store, match):
        result = service.report_match_result(
            {"match_id": match["id"], "winner_id": "bob", "scores": {"alice": 3, "bob": 11}}
        )

        assert result["match"]["status"] == "completed"
        assert result["tournament"] is None
        assert [p["id"] for p in result["players"]] == ["alice", "bob"]
        assert service.bus.pending() == 0

        stored = {p.id: p for p in store.load_players()}
        assert stored["bob"].stats.wins == 1
        assert stored["alice"].name == "Alice"
        assert store.get_match(match["id"]).winner_id == "bob"

        with pytest.raises(AlreadyReported):
            service.report_match_result({"match_id": match["id"], "winner_id": "alice"})

    def test_activity_moves_match_to_ongoing(self, service, match):
        updated = service.record_activity({"match_id": match["id"], "player_id": "alice"})

        assert updated["status"] == "ongoing"
        assert [m["id"] for m in service.list_matches(["ongoing"])] == [match["id"]]
        assert service.list_matches(["completed"]) == []

    def test_prune_finished_matches(self, service, t0):
        service.join_queue({"player_id": "alice", "mode": "pong"}, now=t0)
        first = service.join_queue({"player_id": "bob", "mode": "pong"}, now=t0)["match"]
        service.join_queue({"player_id": "carol", "mode": "pong"}, now=t0)
        second = service.join_queue({"player_id": "dave", "mode": "pong"}, now=t0)["match"]
        service.report_match_result({"match_id": first["id"], "winner_id": "bob"}, now=t0)

        assert service.prune(t0 + timedelta(minutes=59)) == {"matches": 0, "tournaments": 0}
        assert service.prune(t0 + timedelta(hours=1)) == {"matches": 1, "tournaments": 0}

        assert [m["id"] for m in service.list_matches()] == [second["id"]]
        with pytest.raises(UnknownMatch):
            service.record_activity({"match_id": first["id"], "player_id": "bob"})
        assert service.get_player("bob")["stats"]["wins"] == 1

    def test_unknown_match(self, service):
        with pytest.raises(UnknownMatch):
            service.report_match_result({"match_id": "missing", "winner_id": "alice"})

    def test_player_profile(self, service, match):
        service.report_match_result(
            {"match_id": match["id"], "winner_id": "alice", "scores": {"alice": 11, "bob": 2}}
        )

        profile = service.get_player("alice")
        assert profile["win_rate"] == 100
        assert profile["average_score"] == 11
        assert profile["is_on_streak"] is False
        assert profile["xp_level"] == 1
        assert service.get_player("nobody") is None

        board = service.leaderboard(limit=1)
        assert board[0]["position"] == 1
        assert board[0]["id"] == "alice"


class TestTournaments:
    """Tournament operations through the service."""

    def test_round_robin_through_service(self, service):
        created = service.create_tournament(
            {"name": "League", "roster": ["A", "B", "C"], "bracket_type": "round_robin", "auto_start": False}
        )
        service.start_tournament(created["id"])

        state = service.get_bracket_state(created["id"])
        assert state["status"] == "ongoing"
        assert len(state["bracket"]["matches"]) == 3

        for match_id, match in state["bracket"]["matches"].items():
            service.report_match_result({"match_id": match_id, "winner_id": match["player_ids"][0]})

        final = service.get_bracket_state(created["id"])
        assert final["status"] == "completed"
        assert final["winner_id"] == final["bracket"]["standings"][0]["player_id"]

    def test_tournament_result_reaches_player_stats(self, service, store):
        created = service.create_tournament({"name": "Cup", "roster": ["P1", "P2"], "auto_start": False})
        service.start_tournament(created["id"])
        match = service.get_bracket_state(created["id"])["rounds"][0]["matches"][0]

        service.report_match_result(
            {"match_id": match["id"], "winner_id": "P1", "scores": {"P1": 11, "P2": 4}}
        )

        winner = service.get_player("P1")
        assert winner["stats"]["wins"] == 1
        assert winner["rating"] == 25
        assert service.get_player("P2")["stats"]["losses"] == 1
        assert [row["id"] for row in service.leaderboard()] == ["P1", "P2"]
        assert service.join_queue({"player_id": "P1", "mode": "pong"})["entry"]["rating"] == 25
        assert {p.id: p.rating for p in store.load_players()} == {"P1": 25, "P2": 0}

    def test_sweep_auto_starts(self, service):
        created = service.create_tournament({"name": "Cup", "roster": ["A", "B"]})

        changed = service.sweep()

        assert changed == [{"tournament_id": created["id"], "started": True, "forfeited": []}]
        assert service.get_bracket_state(created["id"])["status"] == "ongoing"

    def test_cancel(self, service, store):
        created = service.create_tournament({"name": "Cup", "roster": ["A", "B"], "auto_start": False})
        cancelled = service.cancel_tournament(created["id"], reason="rain")

        assert cancelled["status"] == "cancelled"
        assert store.get_tournament(created["id"]).status == "cancelled"
        with pytest.raises(TournamentClosed):
            service.add_participant(created["id"], "C")


def test_restart_restores_player_stats(settings, store):
    first = ArenaService(settings, store=store)
    first.startup()
    first.join_queue({"player_id": "alice", "mode": "pong"})
    match = first.join_queue({"player_id": "bob", "mode": "pong"})["match"]
    first.report_match_result({"match_id": match["id"], "winner_id": "alice"})
    first.join_queue({"player_id": "carol", "mode": "pong"})
    first.shutdown()

    second = ArenaService(settings, store=store)
    second.startup()

    assert second.get_player("alice")["stats"]["wins"] == 1
    assert second.get_player("alice")["rating"] == 25
    # carol's wait did not survive the restart, so she can queue again
    assert store.active_queue_entries() == []
    second.join_queue({"player_id": "carol", "mode": "pong"})
    second.shutdown()
