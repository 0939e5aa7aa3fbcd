"""
Unit tests for the matchmaking queue.

Tests the queue to ensure:
- A player holds at most one active entry per mode
- Pairing is first-come, first-served within the compatibility rules
- Closing entries and forming the match happen together
- Concurrent joins never produce duplicate entries or double-booked players
"""

import threading
from datetime import timedelta

import pytest

from arena.config import Settings
from arena.errors import AlreadyQueued, InvalidMode, NotQueued
from arena.events import MatchFormed, QueueEntryChanged
from arena.matchmaking import MatchmakingQueue, SkillBand


@pytest.fixture
def queue(settings, bus):
    return MatchmakingQueue(settings, bus)


class TestJoinLeave:
    """Tests for entering and leaving a queue."""

    def test_first_player_waits(self, queue, t0):
        entry, match = queue.join("alice", "pong", now=t0)

        assert match is None
        assert entry.active
        assert entry.expires_at == t0 + timedelta(seconds=300)
        assert queue.get_entry("alice", "pong") is entry

    def test_second_player_forms_match(self, queue, t0):
        first, _ = queue.join("alice", "pong", now=t0)
        second, match = queue.join("bob", "pong", now=t0)

        assert match is not None
        assert match.player_ids == ("alice", "bob")
        assert match.mode == "pong"
        for entry in (first, second):
            assert not entry.active
            assert entry.closed_reason == "matched"
            assert entry.match_id == match.id
        assert queue.active_entries("pong") == []

    def test_double_join_rejected(self, queue):
        queue.join("alice", "pong")
        with pytest.raises(AlreadyQueued):
            queue.join("alice", "pong")
        assert len(queue.active_entries("pong")) == 1

    def test_same_player_may_queue_for_two_modes(self, queue):
        queue.join("alice", "pong")
        queue.join("alice", "arkanoid")
        assert queue.get_entry("alice", "pong") is not queue.get_entry("alice", "arkanoid")

    def test_leave_then_rejoin(self, queue):
        first, _ = queue.join("alice", "pong")
        left = queue.leave("alice", "pong")

        assert left is first
        assert left.closed_reason == "left"
        with pytest.raises(NotQueued):
            queue.leave("alice", "pong")

        again, _ = queue.join("alice", "pong")
        assert again.id != first.id
        assert again.active

    def test_unknown_mode(self, queue):
        with pytest.raises(InvalidMode):
            queue.join("alice", "chess")
        with pytest.raises(InvalidMode):
            queue.try_pair("chess")


class TestPairing:
    """Tests for pairing rules."""

    def test_oldest_compatible_pair_wins(self, queue, t0):
        queue.join("picky", "pong", rating=500, min_rating=400, now=t0)
        queue.join("novice", "pong", rating=0, now=t0 + timedelta(seconds=1))
        _, match = queue.join("peer", "pong", rating=450, now=t0 + timedelta(seconds=2))

        assert match.player_ids == ("picky", "peer")
        assert [e.player_id for e in queue.active_entries("pong")] == ["novice"]

    def test_expired_entries_are_closed_before_pairing(self, queue, t0):
        stale, _ = queue.join("alice", "pong", rating=0, min_rating=100, now=t0)

        assert queue.try_pair("pong", now=t0 + timedelta(seconds=301)) is None
        assert not stale.active
        assert stale.closed_reason == "expired"

    def test_pair_all(self, settings, bus, t0):
        # Nobody is compatible until after t0, so joins never pair
        queue = MatchmakingQueue(settings, bus, compatibility=lambda a, b, now: now > t0)
        for name in ("a", "b", "c", "d", "e"):
            queue.join(name, "pong", now=t0)

        matches = queue.pair_all("pong", now=t0 + timedelta(seconds=1))

        assert [m.player_ids for m in matches] == [("a", "b"), ("c", "d")]
        assert [e.player_id for e in queue.active_entries("pong")] == ["e"]

    def test_skill_band_widens_with_wait(self, settings, bus, t0):
        band = SkillBand(base=100, growth_per_second=2, maximum=1000)
        queue = MatchmakingQueue(settings, bus, compatibility=band)
        queue.join("low", "pong", rating=0, now=t0)
        _, match = queue.join("high", "pong", rating=300, now=t0)
        assert match is None

        assert queue.try_pair("pong", now=t0 + timedelta(seconds=50)) is None
        match = queue.try_pair("pong", now=t0 + timedelta(seconds=100))
        assert match.player_ids == ("low", "high")

    def test_multi_player_mode(self, bus, t0):
        settings = Settings(game_modes=["pong", "ffa"], mode_player_counts={"ffa": 4})
        queue = MatchmakingQueue(settings, bus)

        for name in ("a", "b", "c"):
            _, match = queue.join(name, "ffa", now=t0)
            assert match is None
        _, match = queue.join("d", "ffa", now=t0)

        assert match.player_ids == ("a", "b", "c", "d")

    def test_on_match_receives_new_matches(self, settings, bus):
        adopted = []
        queue = MatchmakingQueue(settings, bus, on_match=adopted.append)
        queue.join("alice", "pong")
        _, match = queue.join("bob", "pong")

        assert adopted == [match]

    def test_events_published(self, queue, bus):
        seen = []
        bus.subscribe(QueueEntryChanged, lambda e: seen.append(("entry", e.entry["player_id"], e.entry["active"])))
        bus.subscribe(MatchFormed, lambda e: seen.append(("match", e.source, tuple(e.match["player_ids"]))))

        queue.join("alice", "pong")
        queue.join("bob", "pong")

        assert seen == [
            ("entry", "alice", True),
            ("entry", "bob", True),
            ("entry", "alice", False),
            ("entry", "bob", False),
            ("match", "queue", ("alice", "bob")),
        ]

    def test_queue_stats(self, queue, t0):
        queue.join("alice", "pong", now=t0)
        queue.join("carol", "arkanoid", now=t0)

        stats = queue.queue_stats("pong", now=t0 + timedelta(seconds=30))

        assert stats["size"] == 1
        assert stats["match_size"] == 2
        assert stats["oldest_wait_seconds"] == 30.0


class TestConcurrency:
    """Many threads hitting the same mode at once."""

    def test_concurrent_duplicate_joins(self, queue):
        outcomes = []
        barrier = threading.Barrier(10)

        def join():
            barrier.wait()
            try:
                queue.join("alice", "pong")
                outcomes.append("joined")
            except AlreadyQueued:
                outcomes.append("rejected")

        threads = [threading.Thread(target=join) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("joined") == 1
        assert outcomes.count("rejected") == 9
        assert len(queue.active_entries("pong")) == 1

    def test_concurrent_joins_pair_everyone_once(self, queue):
        matches = []
        lock = threading.Lock()
        barrier = threading.Barrier(20)

        def join(name):
            barrier.wait()
            _, match = queue.join(name, "pong")
            if match is not None:
                with lock:
                    matches.append(match)

        threads = [threading.Thread(target=join, args=(f"p{i}",)) for i in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        players = [p for match in matches for p in match.player_ids]
        assert len(matches) == 10
        assert sorted(players) == sorted(f"p{i}" for i in range(20))
        assert queue.active_entries("pong") == []
