"""
Background sweeps for auto-start, match timeouts and queue pairing.

Each open tournament gets its own asyncio task that calls
``TournamentOrchestrator.evaluate`` every ``sweep_interval_seconds``. One
more task re-runs pairing and expiry for every matchmaking mode, and an
optional housekeeping task evicts closed state from memory.

Tournament tasks are cancelled as soon as the tournament is completed or
cancelled: the scheduler listens for TournamentStateChanged on the bus. A
task that wakes up after its tournament closed sees the terminal status and
exits without touching anything.

Usage:
    scheduler = SweepScheduler(orchestrator, queue=queue)
    await scheduler.start()
    ...
    await scheduler.shutdown()
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from arena.config import Settings
from arena.errors import ArenaError, InvariantViolation, UnknownTournament
from arena.events import Event, TournamentStateChanged
from arena.matchmaking.queue import MatchmakingQueue
from arena.models import utc_now
from arena.statuses import is_closed_tournament_status
from arena.tournaments.orchestrator import TournamentOrchestrator

logger = logging.getLogger(__name__)


class SweepScheduler:
    """
    Owns the cancellable background tasks.

    Args:
        orchestrator: Tournaments to evaluate
        queue: Matchmaking queue to re-pair (optional)
        settings: Sweep interval; defaults to the orchestrator's settings
        after_tick: Called in a worker thread after every evaluation pass
            (e.g. a bus flush)
        housekeeping: Called in a worker thread every interval with "now"
            (e.g. evicting closed tournaments)
        clock: Source of "now"; tests pass a fake
    """

    def __init__(
        self,
        orchestrator: TournamentOrchestrator,
        queue: Optional[MatchmakingQueue] = None,
        settings: Optional[Settings] = None,
        after_tick: Optional[Callable[[], object]] = None,
        housekeeping: Optional[Callable[[datetime], object]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.orchestrator = orchestrator
        self.queue = queue
        self.settings = settings or orchestrator.settings
        self.after_tick = after_tick
        self.housekeeping = housekeeping
        self.clock = clock
        self.running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: dict[str, asyncio.Task] = {}
        self._matchmaking_task: Optional[asyncio.Task] = None
        self._housekeeping_task: Optional[asyncio.Task] = None

    @property
    def interval(self) -> float:
        return self.settings.sweep_interval_seconds

    def watched(self) -> list[str]:
        return [tid for tid, task in self._tasks.items() if not task.done()]

    async def start(self) -> None:
        """Spawn tasks for every open tournament, the matchmaking sweep and housekeeping."""
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self.running = True

        if self.orchestrator.bus is not None:
            self.orchestrator.bus.subscribe(TournamentStateChanged, self._on_state_changed)
        for tournament_id in self.orchestrator.open_tournament_ids():
            self.watch(tournament_id)
        if self.queue is not None:
            self._matchmaking_task = self._loop.create_task(
                self._run_matchmaking(), name="arena-matchmaking"
            )
        if self.housekeeping is not None:
            self._housekeeping_task = self._loop.create_task(
                self._run_housekeeping(), name="arena-housekeeping"
            )
        logger.info(
            "Sweep scheduler started (interval=%.2fs, tournaments=%d)",
            self.interval,
            len(self._tasks),
        )

    def watch(self, tournament_id: str) -> Optional[asyncio.Task]:
        """Start evaluating a tournament. Must run on the scheduler's loop."""
        if not self.running or self._loop is None:
            return None
        existing = self._tasks.get(tournament_id)
        if existing is not None and not existing.done():
            return existing

        task = self._loop.create_task(
            self._run_tournament(tournament_id), name=f"arena-tournament-{tournament_id}"
        )
        self._tasks[tournament_id] = task
        task.add_done_callback(lambda done, tid=tournament_id: self._forget(tid, done))
        logger.debug("Watching tournament %s", tournament_id)
        return task

    def unwatch(self, tournament_id: str) -> bool:
        """Cancel a tournament's task. Returns False if none was running."""
        task = self._tasks.pop(tournament_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("Stopped watching tournament %s", tournament_id)
        return True

    async def shutdown(self) -> None:
        """Cancel every task and wait for them to finish."""
        self.running = False
        if self.orchestrator.bus is not None:
            self.orchestrator.bus.unsubscribe(TournamentStateChanged, self._on_state_changed)

        tasks = list(self._tasks.values())
        tasks.extend(t for t in (self._matchmaking_task, self._housekeeping_task) if t is not None)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._matchmaking_task = None
        self._housekeeping_task = None
        logger.info("Sweep scheduler stopped (%d tasks cancelled)", len(tasks))

    # =========================================================================
    # Tasks
    # =========================================================================

    async def _run_tournament(self, tournament_id: str) -> None:
        while self.running:
            if not self._is_open(tournament_id):
                return
            try:
                self.orchestrator.evaluate(tournament_id, self.clock())
            except InvariantViolation:
                logger.exception("Invariant violation while sweeping tournament %s", tournament_id)
                raise
            except ArenaError:
                logger.exception("Sweep of tournament %s failed", tournament_id)
            await self._tick()
            if not self._is_open(tournament_id):
                return
            await asyncio.sleep(self.interval)

    async def _run_matchmaking(self) -> None:
        while self.running:
            now = self.clock()
            for mode in self.queue.modes():
                matches = self.queue.pair_all(mode, now)
                if matches:
                    logger.debug("Sweep paired %d match(es) in %s", len(matches), mode)
            await self._tick()
            await asyncio.sleep(self.interval)

    async def _run_housekeeping(self) -> None:
        while self.running:
            await asyncio.to_thread(self.housekeeping, self.clock())
            await asyncio.sleep(self.interval)

    # =========================================================================
    # Internals
    # =========================================================================

    def _is_open(self, tournament_id: str) -> bool:
        try:
            status = self.orchestrator.get_tournament(tournament_id).status
        except UnknownTournament:
            # evicted after closing
            return False
        return not is_closed_tournament_status(status)

    async def _tick(self) -> None:
        # Flushing runs persistence subscribers, which block on database I/O
        if self.after_tick is not None:
            await asyncio.to_thread(self.after_tick)

    def _forget(self, tournament_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(tournament_id) is task:
            del self._tasks[tournament_id]

    def _on_state_changed(self, event: Event) -> None:
        if not self.running or self._loop is None:
            return
        tournament_id = event.tournament["id"]
        if is_closed_tournament_status(event.status):
            self._call_on_loop(self.unwatch, tournament_id)
        elif event.previous_status is None:
            self._call_on_loop(self.watch, tournament_id)

    def _call_on_loop(self, func: Callable[[str], object], tournament_id: str) -> None:
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is self._loop:
            func(tournament_id)
        else:
            self._loop.call_soon_threadsafe(func, tournament_id)
