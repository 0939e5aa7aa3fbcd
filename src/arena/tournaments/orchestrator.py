"""
Tournament orchestrator.

Owns each tournament's lifecycle and drives its bracket:

    upcoming -> ongoing -> completed
    upcoming | ongoing -> cancelled

Responsibilities:
- Roster management while a tournament is upcoming
- Auto-start once the roster reaches the minimum size and the start delay
  has passed (or an immediate manual start)
- Feeding reported results to the bracket engine and player ledger
- Forfeiting matches that exceed the match timeout
- Announcing every transition on the event bus

Every mutation of a tournament runs under that tournament's lock. Two
tournaments never block each other.

Timeout policy for an overdue match:
- exactly one side never acted: that side forfeits
- neither side acted: the earlier roster entry forfeits
- both acted: the side with the older last activity forfeits (ties go to
  the earlier roster entry)
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

from arena.bracket.engine import BracketEngine, validate_roster
from arena.config import KNOWN_SEEDING_METHODS, Settings, get_settings
from arena.errors import (
    InvalidBracketType,
    InvalidMode,
    InvalidRequest,
    InvalidRoster,
    InvariantViolation,
    TournamentClosed,
    UnknownMatch,
    UnknownTournament,
)
from arena.events import EventBus, MatchCompleted, MatchFormed, TournamentStateChanged
from arena.locks import KeyedLocks
from arena.models import Match, Player, new_id, utc_now
from arena.rating.ledger import PlayerLedger
from arena.statuses import TOURNAMENT_STATUS_GROUPS, can_transition, is_closed_tournament_status

logger = logging.getLogger(__name__)


def choose_forfeiting_player(match: Match, seed_of: Callable[[str], int]) -> str:
    """
    Pick the side that loses an overdue match.

    Args:
        match: The overdue match
        seed_of: Seed position of a player (lower is the earlier seed)

    Returns:
        Player id of the forfeiting side
    """
    idle = [p for p in match.player_ids if p not in match.last_activity]
    if len(idle) == 1:
        return idle[0]
    if idle:
        return min(idle, key=seed_of)
    return min(match.player_ids, key=lambda p: (match.last_activity[p], seed_of(p)))


@dataclass
class Tournament:
    """A tournament and the bracket it owns."""

    name: str
    mode: str
    bracket_type: str
    seeding: str
    roster: list[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    status: str = "upcoming"
    auto_start: bool = True
    auto_start_at: Optional[datetime] = None
    winner_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    engine: Optional[BracketEngine] = field(default=None, repr=False)

    @property
    def is_open(self) -> bool:
        return self.status in TOURNAMENT_STATUS_GROUPS["open"]

    def rounds(self) -> list[tuple[str, list[Match]]]:
        return self.engine.rounds() if self.engine else []

    def to_dict(self, include_bracket: bool = False) -> dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "mode": self.mode,
            "bracket_type": self.bracket_type,
            "seeding": self.seeding,
            "status": self.status,
            "roster": list(self.roster),
            "auto_start": self.auto_start,
            "auto_start_at": self.auto_start_at.isoformat() if self.auto_start_at else None,
            "winner_id": self.winner_id,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "rounds": [
                {"round_code": code, "matches": [match.to_dict() for match in matches]}
                for code, matches in self.rounds()
            ],
        }
        if include_bracket:
            data["bracket"] = self.engine.snapshot() if self.engine else None
        return data


@dataclass
class ResultOutcome:
    """Everything one result (reported or forfeited) changed."""

    tournament: Tournament
    match: Match
    players: list[Player] = field(default_factory=list)
    scheduled: list[Match] = field(default_factory=list)
    eliminated: list[str] = field(default_factory=list)


@dataclass
class Evaluation:
    """What one sweep pass did to a tournament."""

    tournament_id: str
    started: bool = False
    forfeited: list[Match] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.started or bool(self.forfeited)


class TournamentOrchestrator:
    """
    Registry and state machine for every tournament in the process.

    Args:
        settings: Roster bounds, delays and timeouts
        bus: Receives TournamentStateChanged, MatchFormed and MatchCompleted
        ledger: Player ledger updated after every result
        rng: Random source for random seeding
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        bus: Optional[EventBus] = None,
        ledger: Optional[PlayerLedger] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or get_settings()
        self.bus = bus
        self.ledger = ledger if ledger is not None else PlayerLedger(self.settings)
        self.rng = rng
        self._tournaments: dict[str, Tournament] = {}
        self._match_index: dict[str, str] = {}
        self._locks = KeyedLocks()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create_tournament(
        self,
        name: str,
        roster: Iterable[str] = (),
        bracket_type: Optional[str] = None,
        mode: Optional[str] = None,
        seeding: Optional[str] = None,
        auto_start: bool = True,
        now: Optional[datetime] = None,
    ) -> Tournament:
        """
        Register an upcoming tournament.

        An empty roster opens registration (players join through
        ``add_participant``). A non-empty roster must already satisfy the
        configured size bounds.

        Raises:
            InvalidRoster: roster outside the bounds or with duplicates
            InvalidBracketType: bracket type unknown or disabled
            InvalidMode: unknown mode, or a mode whose matches are not 1v1
            InvalidRequest: unknown seeding method or blank name
        """
        now = now or utc_now()
        roster = list(roster)
        bracket_type = bracket_type or self.settings.default_bracket_type
        mode = mode or self.settings.game_modes[0]
        seeding = seeding or self.settings.default_seeding_method

        if not name or not name.strip():
            raise InvalidRequest("Tournament name must not be blank")
        if bracket_type not in self.settings.bracket_types:
            raise InvalidBracketType(f"Unknown bracket type: {bracket_type}", bracket_type=bracket_type)
        if mode not in self.settings.game_modes:
            raise InvalidMode(f"Unknown game mode: {mode}", mode=mode)
        if self.settings.match_size_for(mode) != 2:
            raise InvalidMode(f"Tournaments need a two-player mode, {mode} is not", mode=mode)
        if seeding not in KNOWN_SEEDING_METHODS:
            raise InvalidRequest(f"Unknown seeding method: {seeding}", seeding=seeding)
        if roster:
            validate_roster(roster, self.settings.roster_min_size, self.settings.roster_max_size)

        tournament = Tournament(
            name=name.strip(),
            mode=mode,
            bracket_type=bracket_type,
            seeding=seeding,
            roster=roster,
            auto_start=auto_start,
            created_at=now,
        )
        with self._locks.hold(tournament.id):
            self._tournaments[tournament.id] = tournament
            for player_id in roster:
                self.ledger.ensure(player_id)
            self._arm_auto_start(tournament, now)
            self._publish(
                TournamentStateChanged(
                    tournament=tournament.to_dict(),
                    previous_status=None,
                    status=tournament.status,
                    occurred_at=now,
                )
            )
        logger.info(
            "Created tournament %s '%s' (%s, %s, %d players)",
            tournament.id,
            tournament.name,
            bracket_type,
            mode,
            len(roster),
        )
        return tournament

    def add_participant(
        self, tournament_id: str, player_id: str, now: Optional[datetime] = None
    ) -> Tournament:
        """
        Add a player to an upcoming tournament.

        Raises:
            UnknownTournament: no such tournament
            TournamentClosed: the tournament already started or closed
            InvalidRoster: roster full or player already registered
        """
        now = now or utc_now()
        tournament = self.get_tournament(tournament_id)
        with self._locks.hold(tournament_id):
            if tournament.status != "upcoming":
                raise TournamentClosed(
                    f"Tournament {tournament_id} is {tournament.status}; roster is fixed",
                    tournament_id=tournament_id,
                    status=tournament.status,
                )
            if not player_id:
                raise InvalidRoster("Player id must not be empty")
            if player_id in tournament.roster:
                raise InvalidRoster(
                    f"Player {player_id} is already registered",
                    tournament_id=tournament_id,
                    player_id=player_id,
                )
            if len(tournament.roster) >= self.settings.roster_max_size:
                raise InvalidRoster(
                    f"Tournament {tournament_id} is full ({self.settings.roster_max_size} players)",
                    tournament_id=tournament_id,
                )
            tournament.roster.append(player_id)
            self.ledger.ensure(player_id)
            self._arm_auto_start(tournament, now)
        logger.debug("Player %s joined tournament %s", player_id, tournament_id)
        return tournament

    def start_tournament(self, tournament_id: str, now: Optional[datetime] = None) -> Tournament:
        """
        Fix the roster, build the bracket and move to ongoing.

        Raises:
            UnknownTournament: no such tournament
            TournamentClosed: the tournament is not upcoming
            InvalidRoster: fewer players than the configured minimum
        """
        tournament = self.get_tournament(tournament_id)
        with self._locks.hold(tournament_id):
            self._start_locked(tournament, now or utc_now())
        return tournament

    def cancel_tournament(
        self, tournament_id: str, reason: Optional[str] = None, now: Optional[datetime] = None
    ) -> Tournament:
        """
        Cancel an upcoming or ongoing tournament.

        Auto-start and timeout evaluation stop immediately; later results
        are refused with TournamentClosed.
        """
        now = now or utc_now()
        tournament = self.get_tournament(tournament_id)
        with self._locks.hold(tournament_id):
            if not tournament.is_open:
                raise TournamentClosed(
                    f"Tournament {tournament_id} is already {tournament.status}",
                    tournament_id=tournament_id,
                    status=tournament.status,
                )
            tournament.auto_start_at = None
            tournament.cancelled_at = now
            self._transition(tournament, "cancelled", now)
        logger.info(
            "Cancelled tournament %s%s",
            tournament_id,
            f" ({reason})" if reason else "",
        )
        return tournament

    # =========================================================================
    # Matches
    # =========================================================================

    def report_match_result(
        self,
        tournament_id: str,
        match_id: str,
        winner_id: str,
        scores: Optional[dict[str, int]] = None,
        now: Optional[datetime] = None,
    ) -> ResultOutcome:
        """
        Apply a reported result.

        Delegates to the bracket engine, applies the rating step to every
        participant and completes the tournament once its bracket is done.

        Raises:
            UnknownTournament: no such tournament
            TournamentClosed: not started yet, completed or cancelled
            UnknownMatch / AlreadyReported / InvalidResult: from the bracket
        """
        tournament = self.get_tournament(tournament_id)
        with self._locks.hold(tournament_id):
            self._require_ongoing(tournament)
            return self._apply_result(
                tournament, match_id, winner_id, scores, forfeited=False, now=now or utc_now()
            )

    def record_activity(
        self,
        tournament_id: str,
        match_id: str,
        player_id: str,
        now: Optional[datetime] = None,
    ) -> Match:
        """Mark that ``player_id`` acted in a match. Feeds the timeout policy."""
        tournament = self.get_tournament(tournament_id)
        with self._locks.hold(tournament_id):
            self._require_ongoing(tournament)
            match = tournament.engine.get_match(match_id)
            match.mark_activity(player_id, now or utc_now())
            return match

    # =========================================================================
    # Background evaluation
    # =========================================================================

    def evaluate(self, tournament_id: str, now: Optional[datetime] = None) -> Evaluation:
        """
        Run auto-start and timeout policy for one tournament.

        Safe to call at any time: a closed tournament is left untouched.
        """
        now = now or utc_now()
        tournament = self.get_tournament(tournament_id)
        evaluation = Evaluation(tournament_id=tournament_id)
        with self._locks.hold(tournament_id):
            if is_closed_tournament_status(tournament.status):
                return evaluation

            if (
                tournament.status == "upcoming"
                and tournament.auto_start_at is not None
                and now >= tournament.auto_start_at
            ):
                if len(tournament.roster) >= self.settings.roster_min_size:
                    self._start_locked(tournament, now)
                    evaluation.started = True
                else:
                    tournament.auto_start_at = None

            if tournament.status == "ongoing":
                evaluation.forfeited = self._forfeit_overdue(tournament, now)
        return evaluation

    def sweep(self, now: Optional[datetime] = None) -> list[Evaluation]:
        """Evaluate every open tournament. Returns the ones that changed."""
        now = now or utc_now()
        changed = []
        for tournament_id in self.open_tournament_ids():
            evaluation = self.evaluate(tournament_id, now)
            if evaluation.changed:
                changed.append(evaluation)
        return changed

    def prune_closed(self, now: Optional[datetime] = None) -> list[str]:
        """
        Forget tournaments closed more than ``closed_retention_seconds`` ago.

        Their rows stay in storage; afterwards the orchestrator answers
        UnknownTournament / UnknownMatch for them.

        Returns:
            Ids of the tournaments dropped
        """
        now = now or utc_now()
        cutoff = now - timedelta(seconds=self.settings.closed_retention_seconds)
        pruned = []
        for tournament in list(self._tournaments.values()):
            closed_at = tournament.completed_at or tournament.cancelled_at
            if tournament.is_open or closed_at is None or closed_at > cutoff:
                continue
            with self._locks.hold(tournament.id):
                del self._tournaments[tournament.id]
                for match_id, owner in list(self._match_index.items()):
                    if owner == tournament.id:
                        del self._match_index[match_id]
            self._locks.discard(tournament.id)
            pruned.append(tournament.id)

        if pruned:
            logger.info("Evicted %d closed tournament(s) from memory", len(pruned))
        return pruned

    # =========================================================================
    # Reads
    # =========================================================================

    def get_tournament(self, tournament_id: str) -> Tournament:
        tournament = self._tournaments.get(tournament_id)
        if tournament is None:
            raise UnknownTournament(
                f"Tournament {tournament_id} not found", tournament_id=tournament_id
            )
        return tournament

    def tournament_for_match(self, match_id: str) -> Optional[str]:
        return self._match_index.get(match_id)

    def list_tournaments(self, status: Optional[str] = None) -> list[Tournament]:
        tournaments = list(self._tournaments.values())
        if status is not None:
            tournaments = [t for t in tournaments if t.status == status]
        return sorted(tournaments, key=lambda t: t.created_at)

    def open_tournament_ids(self) -> list[str]:
        return [t.id for t in self._tournaments.values() if t.is_open]

    def get_bracket_state(self, tournament_id: str) -> dict[str, Any]:
        """Read-only snapshot of a tournament and its bracket."""
        tournament = self.get_tournament(tournament_id)
        with self._locks.hold(tournament_id):
            return tournament.to_dict(include_bracket=True)

    # =========================================================================
    # Internals (callers hold the tournament lock)
    # =========================================================================

    def _arm_auto_start(self, tournament: Tournament, now: datetime) -> None:
        if (
            tournament.auto_start
            and tournament.auto_start_at is None
            and len(tournament.roster) >= self.settings.roster_min_size
        ):
            tournament.auto_start_at = now + timedelta(seconds=self.settings.auto_start_delay_seconds)
            logger.debug(
                "Tournament %s will auto-start at %s", tournament.id, tournament.auto_start_at
            )

    def _require_ongoing(self, tournament: Tournament) -> None:
        if tournament.status != "ongoing":
            raise TournamentClosed(
                f"Tournament {tournament.id} is {tournament.status}; results are not accepted",
                tournament_id=tournament.id,
                status=tournament.status,
            )

    def _start_locked(self, tournament: Tournament, now: datetime) -> None:
        if tournament.status != "upcoming":
            raise TournamentClosed(
                f"Tournament {tournament.id} is {tournament.status}; it cannot be started",
                tournament_id=tournament.id,
                status=tournament.status,
            )
        if len(tournament.roster) < self.settings.roster_min_size:
            raise InvalidRoster(
                f"Tournament {tournament.id} needs at least {self.settings.roster_min_size} players",
                tournament_id=tournament.id,
                size=len(tournament.roster),
            )

        engine = BracketEngine(tournament_id=tournament.id, mode=tournament.mode, settings=self.settings)
        scheduled = engine.build(
            tournament.roster,
            tournament.bracket_type,
            seeding=tournament.seeding,
            ratings=self.ledger.ratings(tournament.roster),
            rng=self.rng,
            now=now,
        )
        tournament.engine = engine
        tournament.started_at = now
        tournament.auto_start_at = None
        self._transition(tournament, "ongoing", now)
        self._announce_scheduled(scheduled, now)
        logger.info(
            "Started tournament %s with %d players (%d byes)",
            tournament.id,
            len(tournament.roster),
            engine.bye_count,
        )

    def _apply_result(
        self,
        tournament: Tournament,
        match_id: str,
        winner_id: str,
        scores: Optional[dict[str, int]],
        forfeited: bool,
        now: datetime,
    ) -> ResultOutcome:
        if self._match_index.get(match_id, tournament.id) != tournament.id:
            raise UnknownMatch(
                f"Match {match_id} belongs to another tournament",
                match_id=match_id,
                tournament_id=tournament.id,
            )
        update = tournament.engine.report_result(
            match_id, winner_id, scores, forfeited=forfeited, now=now
        )
        players = self.ledger.record_match(update.match)
        if update.completed:
            tournament.winner_id = update.champion_id
            tournament.completed_at = now

        self._publish(
            MatchCompleted(
                match=update.match.to_dict(),
                players=[player.to_dict() for player in players],
                tournament=tournament.to_dict(include_bracket=True),
                occurred_at=now,
            )
        )
        self._announce_scheduled(update.scheduled, now)

        if update.completed:
            self._transition(tournament, "completed", now)
            logger.info("Tournament %s completed, winner %s", tournament.id, tournament.winner_id)

        return ResultOutcome(
            tournament=tournament,
            match=update.match,
            players=players,
            scheduled=update.scheduled,
            eliminated=update.eliminated,
        )

    def _forfeit_overdue(self, tournament: Tournament, now: datetime) -> list[Match]:
        timeout = timedelta(seconds=self.settings.match_timeout_seconds)
        forfeited = []
        for match in tournament.engine.pending_matches():
            if tournament.status != "ongoing":
                break
            if now - match.created_at < timeout:
                continue
            loser_id = choose_forfeiting_player(match, tournament.engine.seed_of)
            winner_id = next(p for p in match.player_ids if p != loser_id)
            logger.info(
                "Match %s in tournament %s timed out; %s forfeits to %s",
                match.id,
                tournament.id,
                loser_id,
                winner_id,
            )
            self._apply_result(tournament, match.id, winner_id, None, forfeited=True, now=now)
            forfeited.append(match)
        return forfeited

    def _transition(self, tournament: Tournament, status: str, now: datetime) -> None:
        previous = tournament.status
        if not can_transition(previous, status):
            logger.error(
                "Illegal tournament transition %s -> %s for %s", previous, status, tournament.id
            )
            raise InvariantViolation(
                f"Tournament {tournament.id} cannot move from {previous} to {status}",
                tournament_id=tournament.id,
            )
        tournament.status = status
        self._publish(
            TournamentStateChanged(
                tournament=tournament.to_dict(include_bracket=True),
                previous_status=previous,
                status=status,
                occurred_at=now,
            )
        )

    def _announce_scheduled(self, matches: list[Match], now: datetime) -> None:
        for match in matches:
            self._match_index[match.id] = match.tournament_id
            self._publish(MatchFormed(match=match.to_dict(), source="bracket", occurred_at=now))

    def _publish(self, event) -> None:
        if self.bus is not None:
            self.bus.publish(event)
