"""
Bracket engine: builds a tournament structure and advances it on results.

Supported formats:

- single_elimination: seeded list padded with byes to a power of two,
  adjacent slots paired. One loss eliminates.
- double_elimination: the same winners bracket, a losers bracket fed by
  cross-linked loser pointers, a grand final and a reset match that is
  only played when the losers-bracket champion wins the grand final.
- round_robin: every pair meets once (circle method); all fixtures are
  scheduled at build time.

Lifecycle: building -> active -> completed. A bracket is built exactly once
and its type never changes afterwards.

Every result is applied as a single transition. If advancing would break a
structural rule (a slot filled twice, a player matched against themself or
against someone already eliminated) the engine raises InvariantViolation
and rolls back to the state before the result was applied.

Usage:
    engine = BracketEngine(tournament_id="t1", mode="pong")
    first_round = engine.build(["P1", "P2", "P3", "P4"], "single_elimination")
    update = engine.report_result(first_round[0].id, "P1")
"""

from __future__ import annotations

import copy
import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, NamedTuple, Optional, Sequence

from arena.bracket.nodes import SECTIONS, BracketNode, SlotRef
from arena.bracket.positions import (
    get_feeder_slot,
    get_matches_in_round,
    get_next_draw_position,
    get_round_code,
    losers_matches_in_round,
    losers_round_count,
    rounds_for_size,
)
from arena.bracket.round_robin import Standing, circle_rounds, rank_round_robin, tally
from arena.bracket.seeding import pad_with_byes, seed_roster
from arena.config import ROSTER_FLOOR, Settings, get_settings
from arena.errors import (
    AlreadyReported,
    ArenaError,
    InvalidBracketType,
    InvalidResult,
    InvalidRoster,
    InvariantViolation,
    UnknownMatch,
)
from arena.models import Match, MatchResult, utc_now

logger = logging.getLogger(__name__)

BracketState = Literal["building", "active", "completed"]


def validate_roster(roster: Sequence[str], min_size: int, max_size: int) -> None:
    """
    Check roster size and uniqueness.

    Raises:
        InvalidRoster: size outside [min_size, max_size], an empty id,
            or a player listed twice
    """
    if not min_size <= len(roster) <= max_size:
        raise InvalidRoster(
            f"Roster must have between {min_size} and {max_size} players, got {len(roster)}",
            size=len(roster),
        )
    if any(not player_id for player_id in roster):
        raise InvalidRoster("Roster contains an empty player id")
    duplicates = sorted(p for p, count in Counter(roster).items() if count > 1)
    if duplicates:
        raise InvalidRoster(f"Duplicate players in roster: {duplicates}", duplicates=duplicates)


@dataclass
class BracketUpdate:
    """What a single reported result changed."""

    match: Match
    scheduled: list[Match] = field(default_factory=list)
    eliminated: list[str] = field(default_factory=list)
    completed: bool = False
    champion_id: Optional[str] = None


class _Checkpoint(NamedTuple):
    nodes: list[BracketNode]
    losses: dict[str, int]
    eliminated: list[str]
    champion_id: Optional[str]
    state: str
    match_ids: set[str]
    match_state: tuple[str, Optional[MatchResult], Optional[datetime]]


class BracketEngine:
    """
    One tournament's bracket.

    Args:
        tournament_id: Stamped on every generated match
        mode: Game mode of the generated matches
        settings: Supplies roster bounds and enabled bracket types
    """

    def __init__(
        self,
        tournament_id: Optional[str] = None,
        mode: str = "pong",
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.tournament_id = tournament_id
        self.mode = mode
        self.state: BracketState = "building"
        self.bracket_type: Optional[str] = None
        self.seeding: Optional[str] = None
        self.seeds: list[str] = []
        self.bracket_size = 0
        self.nodes: list[BracketNode] = []
        self.matches: dict[str, Match] = {}
        self.champion_id: Optional[str] = None

        self._node_by_match: dict[str, int] = {}
        self._losses: dict[str, int] = {}
        # Elimination order, first out first
        self._eliminated: list[str] = []

        # Per-transition scratch
        self._now: Optional[datetime] = None
        self._scheduled: list[Match] = []
        self._newly_eliminated: list[str] = []

    # =========================================================================
    # Build
    # =========================================================================

    def build(
        self,
        roster: Sequence[str],
        bracket_type: Optional[str] = None,
        seeding: Optional[str] = None,
        ratings: Optional[dict[str, int]] = None,
        rng: Optional[random.Random] = None,
        now: Optional[datetime] = None,
    ) -> list[Match]:
        """
        Lay out the bracket and schedule every match that can be played now.

        Args:
            roster: Player ids
            bracket_type: single_elimination, double_elimination or round_robin
            seeding: manual, ranked or random
            ratings: Player ratings, used by ranked seeding
            rng: Random source for random seeding

        Returns:
            The matches scheduled by the build (first round, or every
            fixture for round robin)

        Raises:
            InvalidRoster: Bad roster size or duplicate players
            InvalidBracketType: Unknown or disabled bracket type
            InvalidRequest: Unknown seeding method
            InvariantViolation: The bracket was already built
        """
        if self.state != "building":
            raise InvariantViolation(
                "Bracket has already been built", tournament_id=self.tournament_id
            )

        bracket_type = bracket_type or self.settings.default_bracket_type
        seeding = seeding or self.settings.default_seeding_method
        validate_roster(roster, ROSTER_FLOOR, self.settings.roster_max_size)
        if bracket_type not in self.settings.bracket_types:
            raise InvalidBracketType(
                f"Unknown bracket type: {bracket_type}", bracket_type=bracket_type
            )

        self.seeds = seed_roster(roster, seeding, ratings, rng)
        self.bracket_type = bracket_type
        self.seeding = seeding
        self._losses = {player_id: 0 for player_id in self.seeds}
        self._begin(now)

        if bracket_type == "round_robin":
            self._build_round_robin()
        else:
            self._build_elimination(double=bracket_type == "double_elimination")

        self.state = "active"
        logger.info(
            "Built %s bracket for tournament %s: %d players, %d matches scheduled",
            bracket_type,
            self.tournament_id,
            len(self.seeds),
            len(self._scheduled),
        )
        return list(self._scheduled)

    def _add_node(self, section: str, round_number: int, position: int, round_code: str) -> BracketNode:
        if section not in SECTIONS:
            raise InvariantViolation(f"Unknown bracket section: {section}")
        node = BracketNode(
            index=len(self.nodes),
            section=section,
            round_number=round_number,
            position=position,
            round_code=round_code,
        )
        self.nodes.append(node)
        return node

    def _build_round_robin(self) -> None:
        for round_number, pairs in enumerate(circle_rounds(self.seeds), start=1):
            for position, (a, b) in enumerate(pairs, start=1):
                node = self._add_node("round_robin", round_number, position, f"RR{round_number}")
                node.players = [a, b]
                node.settled = [True, True]
                self._schedule(node)

    def _build_elimination(self, double: bool) -> None:
        padded = pad_with_byes(self.seeds)
        size = self.bracket_size = len(padded)

        winners: list[list[BracketNode]] = []
        for round_number in range(1, rounds_for_size(size) + 1):
            code = f"W{round_number}" if double else get_round_code(round_number, size)
            winners.append([
                self._add_node("winners", round_number, position, code)
                for position in range(1, get_matches_in_round(round_number, size) + 1)
            ])

        for earlier, later in zip(winners, winners[1:]):
            for node in earlier:
                target = later[get_next_draw_position(node.position) - 1]
                node.winner_to = (target.index, get_feeder_slot(node.position))

        if double:
            self._link_losers_bracket(winners, size)

        # Byes settle immediately; whatever they unlock resolves in turn
        for node, (a, b) in zip(winners[0], zip(padded[0::2], padded[1::2])):
            self._settle((node.index, 0), a)
            self._settle((node.index, 1), b)

    def _link_losers_bracket(self, winners: list[list[BracketNode]], size: int) -> None:
        """
        Wire the losers bracket, grand final and reset.

        L1 pairs the first-round losers. After that, even rounds bring in the
        losers of the next winners round (in reverse order, to put off
        rematches) and odd rounds halve the field.
        """
        losers: list[list[BracketNode]] = []
        for round_number in range(1, losers_round_count(size) + 1):
            count = losers_matches_in_round(round_number, size)
            losers.append([
                self._add_node("losers", round_number, position, f"L{round_number}")
                for position in range(1, count + 1)
            ])
        grand_final = self._add_node("grand_final", 1, 1, "GF")
        self._add_node("grand_final_reset", 1, 1, "GF2")

        winners[-1][0].winner_to = (grand_final.index, 0)
        if not losers:
            winners[0][0].loser_to = (grand_final.index, 1)
            return

        for node in winners[0]:
            target = losers[0][get_next_draw_position(node.position) - 1]
            node.loser_to = (target.index, get_feeder_slot(node.position))

        for i, round_nodes in enumerate(losers):
            round_number = i + 1
            is_last = i == len(losers) - 1
            if round_number % 2:
                following = losers[i + 1]
                for node in round_nodes:
                    node.winner_to = (following[node.position - 1].index, 0)
                continue

            count = len(round_nodes)
            for dropping in winners[round_number // 2]:
                dropping.loser_to = (round_nodes[count - dropping.position].index, 1)
            for node in round_nodes:
                if is_last:
                    node.winner_to = (grand_final.index, 1)
                else:
                    target = losers[i + 1][get_next_draw_position(node.position) - 1]
                    node.winner_to = (target.index, get_feeder_slot(node.position))

    # =========================================================================
    # Results
    # =========================================================================

    def report_result(
        self,
        match_id: str,
        winner_id: str,
        scores: Optional[dict[str, int]] = None,
        forfeited: bool = False,
        now: Optional[datetime] = None,
    ) -> BracketUpdate:
        """
        Complete a match and advance the bracket.

        Raises:
            UnknownMatch: match_id is not part of this bracket
            AlreadyReported: the match already has a result
            InvalidResult: winner or scored player is not a participant
            InvariantViolation: advancing would corrupt the bracket (state
                is rolled back before this propagates)
        """
        match = self.matches.get(match_id)
        if match is None:
            raise UnknownMatch(
                f"Match {match_id} is not part of this bracket",
                match_id=match_id,
                tournament_id=self.tournament_id,
            )
        if match.is_completed:
            raise AlreadyReported(f"Match {match_id} is already {match.status}", match_id=match_id)
        if not match.has_player(winner_id):
            raise InvalidResult(
                f"Winner {winner_id} is not a participant of match {match_id}",
                match_id=match_id,
                winner_id=winner_id,
            )

        checkpoint = self._checkpoint(match)
        self._begin(now)
        try:
            match.complete(winner_id, scores, forfeited=forfeited, now=self._now)
            node = self.nodes[self._node_by_match[match_id]]
            loser_id = next(p for p in match.player_ids if p != winner_id)
            self._decide(node, winner_id, loser_id)
            if self.bracket_type == "round_robin":
                self._finish_round_robin_if_done()
        except InvariantViolation as exc:
            logger.error(
                "Rejected result for match %s in tournament %s: %s",
                match_id,
                self.tournament_id,
                exc.message,
            )
            self._restore(checkpoint, match)
            raise
        except ArenaError:
            self._restore(checkpoint, match)
            raise

        return BracketUpdate(
            match=match,
            scheduled=list(self._scheduled),
            eliminated=list(self._newly_eliminated),
            completed=self.is_complete(),
            champion_id=self.champion_id,
        )

    def _begin(self, now: Optional[datetime]) -> None:
        self._now = now or utc_now()
        self._scheduled = []
        self._newly_eliminated = []

    def _settle(self, ref: Optional[SlotRef], player_id: Optional[str]) -> None:
        """Fill one slot (None = nobody) and resolve the node once both are known."""
        if ref is None:
            return
        node_index, slot = ref
        node = self.nodes[node_index]
        if node.settled[slot]:
            raise InvariantViolation(
                f"Bracket slot filled twice ({node.round_code} #{node.position}, slot {slot})",
                node=node_index,
                slot=slot,
                player_id=player_id,
            )
        node.players[slot] = player_id
        node.settled[slot] = True
        if node.ready:
            self._resolve(node)

    def _resolve(self, node: BracketNode) -> None:
        present = node.present_players
        if len(present) == 2:
            self._schedule(node)
            return
        # Bye (one player) or an empty branch (nobody): nothing to play
        node.is_bye = len(present) == 1
        self._decide(node, present[0] if present else None, None)

    def _schedule(self, node: BracketNode) -> Match:
        a, b = node.players
        if a == b:
            raise InvariantViolation(
                f"Player {a} would be matched against themself", node=node.index, player_id=a
            )
        for player_id in (a, b):
            if player_id in self._eliminated:
                raise InvariantViolation(
                    f"Eliminated player {player_id} would be scheduled again",
                    node=node.index,
                    player_id=player_id,
                )

        match = Match(
            mode=self.mode,
            player_ids=(a, b),
            tournament_id=self.tournament_id,
            round_number=node.round_number,
            round_code=node.round_code,
            created_at=self._now,
        )
        node.match_id = match.id
        self.matches[match.id] = match
        self._node_by_match[match.id] = node.index
        self._scheduled.append(match)
        return match

    def _decide(self, node: BracketNode, winner_id: Optional[str], loser_id: Optional[str]) -> None:
        if node.resolved:
            raise InvariantViolation(
                f"Bracket node {node.round_code} #{node.position} decided twice", node=node.index
            )
        node.winner_id = winner_id
        node.loser_id = loser_id
        node.resolved = True

        if node.section == "round_robin":
            return
        if node.section == "grand_final":
            self._decide_grand_final(node, winner_id, loser_id)
            return

        if loser_id is not None:
            self._losses[loser_id] += 1
            if node.loser_to is None:
                self._eliminate(loser_id)
        if node.loser_to is not None:
            self._settle(node.loser_to, loser_id)

        if node.winner_to is not None:
            self._settle(node.winner_to, winner_id)
        elif node.section != "losers":
            # Single-elimination final or the grand-final reset
            self._crown(winner_id)

    def _decide_grand_final(
        self, node: BracketNode, winner_id: Optional[str], loser_id: Optional[str]
    ) -> None:
        reset = self.nodes[node.index + 1]
        if loser_id is None or winner_id == node.players[0]:
            if loser_id is not None:
                self._losses[loser_id] += 1
                self._eliminate(loser_id)
            reset.settled = [True, True]
            reset.resolved = True
            self._crown(winner_id)
            return

        # Losers-bracket champion won: both players now have one loss
        self._losses[loser_id] += 1
        logger.info("Grand final reset in tournament %s", self.tournament_id)
        self._settle((reset.index, 0), node.players[0])
        self._settle((reset.index, 1), node.players[1])

    def _eliminate(self, player_id: str) -> None:
        if player_id in self._eliminated:
            raise InvariantViolation(f"Player {player_id} eliminated twice", player_id=player_id)
        self._eliminated.append(player_id)
        self._newly_eliminated.append(player_id)
        logger.debug("Player %s eliminated from tournament %s", player_id, self.tournament_id)

    def _crown(self, player_id: Optional[str]) -> None:
        if player_id is None:
            raise InvariantViolation("Bracket finished without a champion")
        self.champion_id = player_id
        self.state = "completed"
        logger.info("Tournament %s bracket complete, champion %s", self.tournament_id, player_id)

    def _finish_round_robin_if_done(self) -> None:
        if all(match.is_completed for match in self.matches.values()):
            self._crown(self.standings()[0].player_id)

    def _checkpoint(self, match: Match) -> _Checkpoint:
        return _Checkpoint(
            nodes=copy.deepcopy(self.nodes),
            losses=dict(self._losses),
            eliminated=list(self._eliminated),
            champion_id=self.champion_id,
            state=self.state,
            match_ids=set(self.matches),
            match_state=(match.status, match.result, match.completed_at),
        )

    def _restore(self, checkpoint: _Checkpoint, match: Match) -> None:
        for match_id in set(self.matches) - checkpoint.match_ids:
            del self.matches[match_id]
            self._node_by_match.pop(match_id, None)
        self.nodes = checkpoint.nodes
        self._losses = checkpoint.losses
        self._eliminated = checkpoint.eliminated
        self.champion_id = checkpoint.champion_id
        self.state = checkpoint.state
        match.status, match.result, match.completed_at = checkpoint.match_state

    # =========================================================================
    # Reads
    # =========================================================================

    def is_complete(self) -> bool:
        return self.state == "completed"

    def champion(self) -> Optional[str]:
        return self.champion_id

    @property
    def bye_count(self) -> int:
        if self.bracket_type == "round_robin":
            return 0
        return self.bracket_size - len(self.seeds)

    @property
    def eliminated(self) -> list[str]:
        return list(self._eliminated)

    def losses_of(self, player_id: str) -> int:
        return self._losses.get(player_id, 0)

    def seed_of(self, player_id: str) -> int:
        """0-based seed position (lower is the earlier seed)."""
        return self.seeds.index(player_id)

    def get_match(self, match_id: str) -> Match:
        match = self.matches.get(match_id)
        if match is None:
            raise UnknownMatch(f"Match {match_id} is not part of this bracket", match_id=match_id)
        return match

    def pending_matches(self) -> list[Match]:
        return [match for match in self.matches.values() if match.is_pending]

    def rounds(self) -> list[tuple[str, list[Match]]]:
        """Matches grouped by round, in bracket order. Unplayed rounds are empty."""
        grouped: dict[str, list[Match]] = {}
        for node in self.nodes:
            bucket = grouped.setdefault(node.round_code, [])
            if node.match_id is not None:
                bucket.append(self.matches[node.match_id])
        return list(grouped.items())

    def standings(self) -> list[Standing]:
        """
        Final (or current) placing of every player.

        Round robin ranks the table. Elimination formats put the champion
        first, then players still alive by seed, then eliminated players
        latest-out first.
        """
        matches = list(self.matches.values())
        if self.bracket_type == "round_robin":
            return rank_round_robin(self.seeds, matches)

        table = tally(self.seeds, matches)
        alive = [
            p for p in self.seeds if p not in self._eliminated and p != self.champion_id
        ]
        order = ([self.champion_id] if self.champion_id else []) + alive + self._eliminated[::-1]
        return [table[player_id] for player_id in order]

    def snapshot(self) -> dict[str, Any]:
        """Plain-dict view of the whole bracket, safe to serialise as JSON."""
        return {
            "tournament_id": self.tournament_id,
            "bracket_type": self.bracket_type,
            "seeding": self.seeding,
            "state": self.state,
            "bracket_size": self.bracket_size,
            "seeds": list(self.seeds),
            "champion_id": self.champion_id,
            "eliminated": list(self._eliminated),
            "nodes": [node.to_dict() for node in self.nodes],
            "rounds": [
                {"round_code": code, "match_ids": [match.id for match in matches]}
                for code, matches in self.rounds()
            ],
            "matches": {match_id: match.to_dict() for match_id, match in self.matches.items()},
            "standings": [row.to_dict() for row in self.standings()],
        }
