"""
Request-facing facade over the matchmaking and tournament engine.

ArenaService wires one process's components together and is what request
handlers call:

    service = ArenaService()
    service.startup()
    service.join_queue({"player_id": "alice", "mode": "pong"})
    ...
    service.shutdown()

Inputs may be raw dicts or the request models from ``arena.schemas``;
outputs are plain dicts. Failures are the typed errors from
``arena.errors``.

Events are published on a deferred bus and delivered after each call
returns from the engine, so persistence and notification never run while
an engine lock is held.
"""

from __future__ import annotations

import functools
import logging
import random
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from arena.config import Settings, get_settings
from arena.db.store import SqlStore
from arena.errors import UnknownMatch
from arena.events import EventBus, MatchCompleted
from arena.locks import KeyedLocks
from arena.matchmaking.compat import Compatibility
from arena.matchmaking.queue import MatchmakingQueue
from arena.models import Match, utc_now
from arena.rating.calculator import compute_derived_stats, level_from_xp
from arena.rating.ledger import PlayerLedger
from arena.scheduler import SweepScheduler
from arena.schemas import (
    ArenaRequest,
    CreateTournamentRequest,
    JoinQueueRequest,
    LeaveQueueRequest,
    RecordActivityRequest,
    ReportResultRequest,
    parse_request,
)
from arena.statuses import is_terminal_match_status, normalize_status_filter
from arena.tournaments.orchestrator import TournamentOrchestrator

logger = logging.getLogger(__name__)

Payload = Union[dict[str, Any], ArenaRequest]


def _flush_after(method):
    """Deliver events published during the call once it has finished."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        finally:
            if self.bus.deferred:
                self.bus.flush()

    return wrapper


class ArenaService:
    """
    One process's matchmaking and tournament engine.

    Args:
        settings: Engine settings
        bus: Event bus; a deferred bus is created when omitted
        store: SQL store to persist into (optional)
        rng: Random source for random seeding
        compatibility: Queue pairing predicate override
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        bus: Optional[EventBus] = None,
        store: Optional[SqlStore] = None,
        rng: Optional[random.Random] = None,
        compatibility: Optional[Compatibility] = None,
    ):
        self.settings = settings or get_settings()
        self.bus = bus or EventBus(deferred=True)
        self.store = store
        self.ledger = PlayerLedger(self.settings)
        self.queue = MatchmakingQueue(
            self.settings, self.bus, compatibility, on_match=self._adopt_match
        )
        self.orchestrator = TournamentOrchestrator(self.settings, self.bus, self.ledger, rng)
        self.scheduler: Optional[SweepScheduler] = None

        # Standalone (queue) matches, keyed by id
        self._matches: dict[str, Match] = {}
        self._match_locks = KeyedLocks()
        self._started = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def startup(self) -> None:
        """Hydrate from storage and attach persistence to the bus."""
        if self._started:
            return
        if self.store is not None:
            self.store.close_stale_queue_entries()
            players = self.store.load_players()
            self.ledger.load(players)
            self.store.subscribe(self.bus)
            logger.info("Loaded %d players from storage", len(players))
        self._started = True

    async def start_background(self) -> SweepScheduler:
        """Start auto-start, timeout and pairing sweeps on the running loop."""
        if self.scheduler is None:
            self.scheduler = SweepScheduler(
                self.orchestrator,
                queue=self.queue,
                settings=self.settings,
                after_tick=self.bus.flush if self.bus.deferred else None,
                housekeeping=self.prune,
            )
        await self.scheduler.start()
        return self.scheduler

    async def stop_background(self) -> None:
        if self.scheduler is not None:
            await self.scheduler.shutdown()

    def shutdown(self) -> None:
        """Flush pending events and close the bus."""
        self.bus.shutdown()
        self._started = False

    # =========================================================================
    # Matchmaking
    # =========================================================================

    @_flush_after
    def join_queue(self, payload: Payload, now: Optional[datetime] = None) -> dict[str, Any]:
        request = parse_request(JoinQueueRequest, payload)
        player = self.ledger.ensure(request.player_id, request.name)
        entry, match = self.queue.join(
            request.player_id,
            request.mode,
            rating=player.rating,
            min_rating=request.min_rating,
            max_rating=request.max_rating,
            now=now,
        )
        return {"entry": entry.to_dict(), "match": match.to_dict() if match else None}

    @_flush_after
    def leave_queue(self, payload: Payload, now: Optional[datetime] = None) -> dict[str, Any]:
        request = parse_request(LeaveQueueRequest, payload)
        return self.queue.leave(request.player_id, request.mode, now=now).to_dict()

    @_flush_after
    def try_pair(self, mode: str, now: Optional[datetime] = None) -> Optional[dict[str, Any]]:
        match = self.queue.try_pair(mode, now=now)
        return match.to_dict() if match else None

    def queue_stats(self, mode: str) -> dict[str, Any]:
        return self.queue.queue_stats(mode)

    # =========================================================================
    # Results
    # =========================================================================

    @_flush_after
    def report_match_result(self, payload: Payload, now: Optional[datetime] = None) -> dict[str, Any]:
        """
        Report the final result of a match.

        Tournament matches go through the orchestrator (bracket advance,
        rating step, completion check). Standalone matches only get the
        rating step.
        """
        request = parse_request(ReportResultRequest, payload)
        tournament_id = request.tournament_id or self.orchestrator.tournament_for_match(
            request.match_id
        )
        if tournament_id is not None:
            outcome = self.orchestrator.report_match_result(
                tournament_id, request.match_id, request.winner_id, request.scores, now=now
            )
            return {
                "match": outcome.match.to_dict(),
                "players": [player.to_dict() for player in outcome.players],
                "scheduled": [match.to_dict() for match in outcome.scheduled],
                "eliminated": list(outcome.eliminated),
                "tournament": outcome.tournament.to_dict(),
            }

        match = self._get_standalone(request.match_id)
        now = now or utc_now()
        with self._match_locks.hold(match.id):
            match.complete(request.winner_id, request.scores, now=now)
            players = self.ledger.record_match(match)
            self.bus.publish(
                MatchCompleted(
                    match=match.to_dict(),
                    players=[player.to_dict() for player in players],
                    occurred_at=now,
                )
            )
        logger.info("Match %s won by %s", match.id, request.winner_id)
        return {
            "match": match.to_dict(),
            "players": [player.to_dict() for player in players],
            "scheduled": [],
            "eliminated": [],
            "tournament": None,
        }

    @_flush_after
    def record_activity(self, payload: Payload, now: Optional[datetime] = None) -> dict[str, Any]:
        request = parse_request(RecordActivityRequest, payload)
        tournament_id = self.orchestrator.tournament_for_match(request.match_id)
        if tournament_id is not None:
            match = self.orchestrator.record_activity(
                tournament_id, request.match_id, request.player_id, now=now
            )
            return match.to_dict()

        match = self._get_standalone(request.match_id)
        with self._match_locks.hold(match.id):
            match.mark_activity(request.player_id, now)
        return match.to_dict()

    def list_matches(self, statuses: Optional[list[str]] = None) -> list[dict[str, Any]]:
        """Standalone matches filtered by status (pending ones by default)."""
        wanted = set(normalize_status_filter(statuses))
        matches = [match for match in self._matches.values() if match.status in wanted]
        return [match.to_dict() for match in sorted(matches, key=lambda m: m.created_at)]

    # =========================================================================
    # Tournaments
    # =========================================================================

    @_flush_after
    def create_tournament(self, payload: Payload, now: Optional[datetime] = None) -> dict[str, Any]:
        request = parse_request(CreateTournamentRequest, payload)
        tournament = self.orchestrator.create_tournament(
            request.name,
            request.roster,
            bracket_type=request.bracket_type,
            mode=request.mode,
            seeding=request.seeding,
            auto_start=request.auto_start,
            now=now,
        )
        return tournament.to_dict()

    @_flush_after
    def add_participant(
        self, tournament_id: str, player_id: str, now: Optional[datetime] = None
    ) -> dict[str, Any]:
        return self.orchestrator.add_participant(tournament_id, player_id, now=now).to_dict()

    @_flush_after
    def start_tournament(self, tournament_id: str, now: Optional[datetime] = None) -> dict[str, Any]:
        return self.orchestrator.start_tournament(tournament_id, now=now).to_dict()

    @_flush_after
    def cancel_tournament(
        self, tournament_id: str, reason: Optional[str] = None, now: Optional[datetime] = None
    ) -> dict[str, Any]:
        return self.orchestrator.cancel_tournament(tournament_id, reason=reason, now=now).to_dict()

    @_flush_after
    def sweep(self, now: Optional[datetime] = None) -> list[dict[str, Any]]:
        """Run one auto-start/timeout pass over every open tournament, then prune."""
        changed = [
            {
                "tournament_id": evaluation.tournament_id,
                "started": evaluation.started,
                "forfeited": [match.id for match in evaluation.forfeited],
            }
            for evaluation in self.orchestrator.sweep(now)
        ]
        self.prune(now)
        return changed

    def prune(self, now: Optional[datetime] = None) -> dict[str, int]:
        """
        Evict closed tournaments and finished standalone matches from memory.

        Anything closed less than ``closed_retention_seconds`` ago is kept so
        callers can still read the final state.
        """
        now = now or utc_now()
        cutoff = now - timedelta(seconds=self.settings.closed_retention_seconds)
        finished = [
            match.id
            for match in list(self._matches.values())
            if is_terminal_match_status(match.status)
            and match.completed_at is not None
            and match.completed_at <= cutoff
        ]
        for match_id in finished:
            self._matches.pop(match_id, None)
            self._match_locks.discard(match_id)
        tournaments = self.orchestrator.prune_closed(now)
        return {"matches": len(finished), "tournaments": len(tournaments)}

    def get_bracket_state(self, tournament_id: str) -> dict[str, Any]:
        return self.orchestrator.get_bracket_state(tournament_id)

    # =========================================================================
    # Players
    # =========================================================================

    def get_player(self, player_id: str) -> Optional[dict[str, Any]]:
        """Player record plus every derived statistic, or None if unknown."""
        player = self.ledger.get(player_id)
        if player is None:
            return None
        derived = compute_derived_stats(player.stats)
        data = player.to_dict()
        data.update(
            win_rate=derived.win_rate,
            average_score=derived.average_score,
            is_on_streak=derived.is_on_streak,
            xp_level=level_from_xp(player.stats.xp),
        )
        return data

    def leaderboard(self, limit: int = 10) -> list[dict[str, Any]]:
        return [
            {"position": i, **player.to_dict()}
            for i, player in enumerate(self.ledger.leaderboard(limit), start=1)
        ]

    # =========================================================================
    # Internals
    # =========================================================================

    def _adopt_match(self, match: Match) -> None:
        self._matches[match.id] = match

    def _get_standalone(self, match_id: str) -> Match:
        match = self._matches.get(match_id)
        if match is None:
            raise UnknownMatch(f"Match {match_id} not found", match_id=match_id)
        return match
