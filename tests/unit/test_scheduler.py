"""
Unit tests for the background sweep scheduler.

Each test drives a real event loop with asyncio.run and a fake clock, so
timeouts are reached by moving the clock rather than by waiting.
"""

import asyncio
import threading
import time
from datetime import timedelta

from arena.matchmaking import MatchmakingQueue
from arena.scheduler import SweepScheduler
from arena.tournaments import TournamentOrchestrator

ROSTER = ["P1", "P2", "P3", "P4"]

# Several sweep intervals at the 10ms test setting
SETTLE = 0.05


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def test_new_tournament_is_watched_and_auto_started(settings, bus):
    orchestrator = TournamentOrchestrator(settings, bus)

    async def scenario():
        scheduler = SweepScheduler(orchestrator)
        await scheduler.start()

        tournament = orchestrator.create_tournament("Cup", ROSTER)
        assert scheduler.watched() == [tournament.id]

        await asyncio.sleep(SETTLE)
        assert tournament.status == "ongoing"

        orchestrator.cancel_tournament(tournament.id)
        assert scheduler.watched() == []

        await scheduler.shutdown()

    asyncio.run(scenario())


def test_timeouts_forfeit_until_complete(settings, bus, t0):
    orchestrator = TournamentOrchestrator(settings, bus)
    tournament = orchestrator.create_tournament("Cup", ROSTER, now=t0)
    clock = FakeClock(t0)
    ticks = []

    async def scenario():
        scheduler = SweepScheduler(orchestrator, after_tick=lambda: ticks.append(1), clock=clock)
        await scheduler.start()
        assert scheduler.watched() == [tournament.id]

        await asyncio.sleep(SETTLE)
        assert tournament.status == "ongoing"
        assert len(tournament.engine.pending_matches()) == 2

        clock.now = t0 + timedelta(seconds=60)
        await asyncio.sleep(SETTLE)
        final = tournament.engine.pending_matches()
        assert [m.round_code for m in final] == ["F"]

        clock.now = t0 + timedelta(seconds=120)
        await asyncio.sleep(SETTLE)
        assert tournament.status == "completed"
        assert scheduler.watched() == []

        await scheduler.shutdown()

    asyncio.run(scenario())
    assert tournament.winner_id == "P4"
    assert ticks


def test_matchmaking_sweep_pairs_when_compatible(settings, bus, t0):
    orchestrator = TournamentOrchestrator(settings, bus)
    clock = FakeClock(t0)
    queue = MatchmakingQueue(
        settings, bus, compatibility=lambda a, b, now: now >= t0 + timedelta(seconds=10)
    )
    queue.join("alice", "pong", now=t0)
    queue.join("bob", "pong", now=t0)

    async def scenario():
        scheduler = SweepScheduler(orchestrator, queue=queue, clock=clock)
        await scheduler.start()

        await asyncio.sleep(SETTLE)
        assert len(queue.active_entries("pong")) == 2

        clock.now = t0 + timedelta(seconds=10)
        await asyncio.sleep(SETTLE)
        assert queue.active_entries("pong") == []

        await scheduler.shutdown()

    asyncio.run(scenario())


def test_shutdown_cancels_everything(settings, bus, t0):
    orchestrator = TournamentOrchestrator(settings, bus)
    for i in range(3):
        orchestrator.create_tournament(f"Cup {i}", ROSTER, auto_start=False, now=t0)
    queue = MatchmakingQueue(settings, bus)

    async def scenario():
        scheduler = SweepScheduler(orchestrator, queue=queue)
        await scheduler.start()
        assert len(scheduler.watched()) == 3

        await scheduler.shutdown()
        assert scheduler.watched() == []
        assert not scheduler.running

        # Events after shutdown no longer spawn tasks
        orchestrator.create_tournament("Late", ROSTER, auto_start=False)
        assert scheduler.watched() == []

    asyncio.run(scenario())


def test_slow_flush_does_not_stall_the_loop(settings, bus):
    orchestrator = TournamentOrchestrator(settings, bus)
    queue = MatchmakingQueue(settings, bus)
    flushing = threading.Event()
    release = threading.Event()

    def slow_flush():
        flushing.set()
        release.wait(timeout=5)

    async def scenario():
        scheduler = SweepScheduler(orchestrator, queue=queue, after_tick=slow_flush)
        await scheduler.start()
        try:
            for _ in range(100):
                if flushing.is_set():
                    break
                await asyncio.sleep(0.01)
            assert flushing.is_set()

            began = time.monotonic()
            await asyncio.sleep(0.02)
            assert time.monotonic() - began < 0.5
        finally:
            release.set()
            await scheduler.shutdown()

    asyncio.run(scenario())


def test_housekeeping_runs_with_clock_time(settings, bus, t0):
    orchestrator = TournamentOrchestrator(settings, bus)
    seen = []

    async def scenario():
        scheduler = SweepScheduler(orchestrator, housekeeping=seen.append, clock=FakeClock(t0))
        await scheduler.start()
        await asyncio.sleep(SETTLE)
        await scheduler.shutdown()

    asyncio.run(scenario())
    assert seen
    assert set(seen) == {t0}
