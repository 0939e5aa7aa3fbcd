"""
SQL persistence for engine state.

SqlStore subscribes to the event bus and writes every change it is told
about. It never decides anything: each handler upserts exactly the state
carried by the event, so delivering the same event twice leaves the same
rows behind.

Writes that fail with a transient database error are retried up to
``settings.persist_max_attempts`` times. An IntegrityError is not retried:
it means the storage constraints caught state the engine should never have
produced (for example a second active queue entry), and it is raised as
InvariantViolation.

Usage:
    store = SqlStore(make_session_factory(engine))
    store.create_all()
    store.subscribe(bus)
    ledger.load(store.load_players())
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from arena.config import Settings, get_settings
from arena.db.models import (
    Base,
    MatchRecord,
    PlayerRecord,
    QueueEntryRecord,
    TournamentParticipant,
    TournamentRecord,
)
from arena.db.session import get_session, make_session_factory
from arena.errors import InvariantViolation
from arena.events import (
    EventBus,
    MatchCompleted,
    MatchFormed,
    QueueEntryChanged,
    TournamentStateChanged,
)
from arena.models import Player, PlayerStats

logger = logging.getLogger(__name__)

STAT_FIELDS = (
    "games_played",
    "wins",
    "losses",
    "total_score",
    "current_streak",
    "best_streak",
    "play_time_seconds",
    "xp",
)


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SqlStore:
    """
    Upsert/load operations over the Arena tables.

    Args:
        session_factory: sessionmaker bound to the target engine
        settings: Supplies the retry budget
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory or make_session_factory()
        self.settings = settings or get_settings()

    def create_all(self) -> None:
        Base.metadata.create_all(self.session_factory.kw["bind"])

    def subscribe(self, bus: EventBus) -> None:
        bus.subscribe(QueueEntryChanged, self.on_queue_entry_changed)
        bus.subscribe(MatchFormed, self.on_match_formed)
        bus.subscribe(MatchCompleted, self.on_match_completed)
        bus.subscribe(TournamentStateChanged, self.on_tournament_state_changed)

    # =========================================================================
    # Event handlers
    # =========================================================================

    def on_queue_entry_changed(self, event: QueueEntryChanged) -> None:
        self.save_queue_entry(event.entry)

    def on_match_formed(self, event: MatchFormed) -> None:
        self.save_match(event.match)

    def on_match_completed(self, event: MatchCompleted) -> None:
        def write(session: Session) -> None:
            for player in event.players:
                self._upsert_player(session, player)
            if event.tournament is not None:
                self._upsert_tournament(session, event.tournament)
            self._upsert_match(session, event.match)

        self._write(f"result of match {event.match['id']}", write)

    def on_tournament_state_changed(self, event: TournamentStateChanged) -> None:
        self.save_tournament(event.tournament)

    # =========================================================================
    # Upserts
    # =========================================================================

    def save_player(self, player: dict[str, Any]) -> None:
        self._write(f"player {player['id']}", lambda s: self._upsert_player(s, player))

    def save_queue_entry(self, entry: dict[str, Any]) -> None:
        self._write(f"queue entry {entry['id']}", lambda s: self._upsert_queue_entry(s, entry))

    def save_match(self, match: dict[str, Any]) -> None:
        self._write(f"match {match['id']}", lambda s: self._upsert_match(s, match))

    def save_tournament(self, tournament: dict[str, Any]) -> None:
        self._write(
            f"tournament {tournament['id']}", lambda s: self._upsert_tournament(s, tournament)
        )

    def _ensure_player(self, session: Session, player_id: str) -> PlayerRecord:
        record = session.get(PlayerRecord, player_id)
        if record is None:
            record = PlayerRecord(id=player_id)
            session.add(record)
            session.flush()
        return record

    def _upsert_player(self, session: Session, player: dict[str, Any]) -> None:
        record = self._ensure_player(session, player["id"])
        if player.get("name"):
            record.name = player["name"]
        for name in STAT_FIELDS:
            setattr(record, name, player["stats"][name])
        record.rating = player["rating"]
        record.level = player["level"]
        record.rank_tier = player["rank_tier"]
        record.career_rank = player["career_rank"]

    def _upsert_queue_entry(self, session: Session, entry: dict[str, Any]) -> None:
        self._ensure_player(session, entry["player_id"])
        record = session.get(QueueEntryRecord, entry["id"])
        if record is None:
            record = QueueEntryRecord(id=entry["id"])
            session.add(record)
        record.player_id = entry["player_id"]
        record.mode = entry["mode"]
        record.rating = entry["rating"]
        record.min_rating = entry["min_rating"]
        record.max_rating = entry["max_rating"]
        record.is_active = entry["active"]
        record.closed_reason = entry["closed_reason"]
        record.match_id = entry["match_id"]
        record.joined_at = _parse_dt(entry["joined_at"])
        record.expires_at = _parse_dt(entry["expires_at"])

    def _upsert_match(self, session: Session, match: dict[str, Any]) -> None:
        for player_id in match["player_ids"]:
            self._ensure_player(session, player_id)
        record = session.get(MatchRecord, match["id"])
        if record is None:
            record = MatchRecord(id=match["id"])
            session.add(record)
        record.mode = match["mode"]
        record.tournament_id = match["tournament_id"]
        record.round_number = match["round_number"]
        record.round_code = match["round_code"]
        record.player_ids = list(match["player_ids"])
        record.status = match["status"]
        record.winner_id = match["winner_id"]
        record.scores = dict(match["scores"]) or None
        record.forfeited = match["forfeited"]
        record.created_at = _parse_dt(match["created_at"])
        record.started_at = _parse_dt(match["started_at"])
        record.completed_at = _parse_dt(match["completed_at"])

    def _upsert_tournament(self, session: Session, tournament: dict[str, Any]) -> None:
        record = session.get(TournamentRecord, tournament["id"])
        if record is None:
            record = TournamentRecord(id=tournament["id"])
            session.add(record)
        record.name = tournament["name"]
        record.mode = tournament["mode"]
        record.bracket_type = tournament["bracket_type"]
        record.seeding = tournament["seeding"]
        record.status = tournament["status"]
        record.winner_id = tournament["winner_id"]
        record.auto_start = tournament["auto_start"]
        record.auto_start_at = _parse_dt(tournament["auto_start_at"])
        record.created_at = _parse_dt(tournament["created_at"])
        record.started_at = _parse_dt(tournament["started_at"])
        record.completed_at = _parse_dt(tournament["completed_at"])
        record.cancelled_at = _parse_dt(tournament["cancelled_at"])
        if tournament.get("bracket") is not None:
            record.bracket_state = tournament["bracket"]

        registered = {p.player_id for p in record.participants}
        for seed, player_id in enumerate(tournament["roster"]):
            if player_id in registered:
                continue
            self._ensure_player(session, player_id)
            record.participants.append(TournamentParticipant(player_id=player_id, seed=seed))

    # =========================================================================
    # Loads
    # =========================================================================

    def load_players(self) -> list[Player]:
        with get_session(self.session_factory) as session:
            records = session.scalars(select(PlayerRecord)).all()
            return [
                Player(
                    id=record.id,
                    name=record.name,
                    stats=PlayerStats(**{name: getattr(record, name) for name in STAT_FIELDS}),
                    rating=record.rating,
                    level=record.level,
                    rank_tier=record.rank_tier,
                    career_rank=record.career_rank,
                    updated_at=record.updated_at,
                )
                for record in records
            ]

    def get_tournament(self, tournament_id: str) -> Optional[TournamentRecord]:
        with get_session(self.session_factory) as session:
            return session.get(TournamentRecord, tournament_id)

    def get_match(self, match_id: str) -> Optional[MatchRecord]:
        with get_session(self.session_factory) as session:
            return session.get(MatchRecord, match_id)

    def participants(self, tournament_id: str) -> list[str]:
        with get_session(self.session_factory) as session:
            rows = session.scalars(
                select(TournamentParticipant.player_id)
                .where(TournamentParticipant.tournament_id == tournament_id)
                .order_by(TournamentParticipant.seed)
            ).all()
            return list(rows)

    def active_queue_entries(self, mode: Optional[str] = None) -> list[QueueEntryRecord]:
        with get_session(self.session_factory) as session:
            query = select(QueueEntryRecord).where(QueueEntryRecord.is_active.is_(True))
            if mode is not None:
                query = query.where(QueueEntryRecord.mode == mode)
            return list(session.scalars(query.order_by(QueueEntryRecord.joined_at)).all())

    def close_stale_queue_entries(self) -> int:
        """
        Deactivate every active queue row left by a previous process.

        The in-memory queue starts empty, so rows still marked active would
        otherwise block those players through the unique index.
        """
        closed = 0

        def write(session: Session) -> None:
            nonlocal closed
            result = session.execute(
                update(QueueEntryRecord)
                .where(QueueEntryRecord.is_active.is_(True))
                .values(is_active=False, closed_reason="restart")
            )
            closed = result.rowcount or 0

        self._write("stale queue entries", write)
        if closed:
            logger.warning("Closed %d queue entries left active by a previous run", closed)
        return closed

    # =========================================================================
    # Write path
    # =========================================================================

    def _write(self, description: str, func: Callable[[Session], None]) -> None:
        attempts = max(self.settings.persist_max_attempts, 1)
        for attempt in range(1, attempts + 1):
            try:
                with get_session(self.session_factory) as session:
                    func(session)
                return
            except IntegrityError as exc:
                logger.error("Storage constraint rejected %s: %s", description, exc.orig)
                raise InvariantViolation(
                    f"Storage constraint rejected {description}", detail=str(exc.orig)
                ) from exc
            except SQLAlchemyError:
                if attempt == attempts:
                    logger.error("Giving up on %s after %d attempts", description, attempts)
                    raise
                logger.warning(
                    "Write of %s failed (attempt %d/%d), retrying",
                    description,
                    attempt,
                    attempts,
                    exc_info=True,
                )
