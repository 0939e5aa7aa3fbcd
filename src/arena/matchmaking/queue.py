"""
Matchmaking queue with per-mode mutual exclusion.

Players wait in one queue per game mode. The queue guarantees:

1. At most one active entry per (player, mode). The key is the pair
   itself; the ``active`` flag is never part of it, so leaving and
   re-joining can never collide with a stale row.
2. Pairing is first-come, first-served: entries are scanned in join order
   and the oldest waiting player is matched first.
3. Closing the paired entries and creating their match happen inside one
   critical section. Nobody can observe closed entries without a match,
   or a match whose entries are still waiting.

Every mutation for a mode (join, leave, pair, expiry) takes that mode's
lock. Different modes never block each other.

Usage:
    queue = MatchmakingQueue(bus=bus)

    entry, match = queue.join("alice", "pong")
    if match is None:
        # keep waiting; a later join or the periodic sweep may pair her
        ...
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from arena.config import Settings, get_settings
from arena.errors import AlreadyQueued, InvalidMode, InvariantViolation, NotQueued
from arena.events import EventBus, MatchFormed, QueueEntryChanged
from arena.locks import KeyedLocks
from arena.matchmaking.compat import Compatibility, compatibility_from_settings, within_bounds
from arena.models import Match, QueueEntry, utc_now

logger = logging.getLogger(__name__)


class MatchmakingQueue:
    """
    Holds waiting players and pairs them into matches.

    Args:
        settings: Engine settings (modes, match size, TTL, rating bounds)
        bus: Event bus receiving QueueEntryChanged and MatchFormed events
        compatibility: Pairing predicate; defaults to what settings select
        on_match: Receives each formed match (the new owner takes it over)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        bus: Optional[EventBus] = None,
        compatibility: Optional[Compatibility] = None,
        on_match: Optional[Callable[[Match], None]] = None,
    ):
        self.settings = settings or get_settings()
        self.bus = bus
        self.on_match = on_match
        self.compatibility = compatibility or compatibility_from_settings(self.settings)

        # mode -> active entries in join order
        self._waiting: dict[str, list[QueueEntry]] = {}
        # (player_id, mode) -> the one active entry for that key
        self._active: dict[tuple[str, str], QueueEntry] = {}
        self._locks = KeyedLocks()

    # =========================================================================
    # Public operations
    # =========================================================================

    def join(
        self,
        player_id: str,
        mode: str,
        rating: int = 0,
        min_rating: Optional[int] = None,
        max_rating: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> tuple[QueueEntry, Optional[Match]]:
        """
        Put a player in the queue for ``mode`` and try to pair straight away.

        Returns:
            (entry, match) where match is None if nobody could be paired yet.
            When a match is formed the returned entry is already inactive.

        Raises:
            InvalidMode: mode is not configured
            AlreadyQueued: the player already has an active entry for mode
        """
        now = now or utc_now()
        with self._lock_for(mode):
            key = (player_id, mode)
            if key in self._active:
                raise AlreadyQueued(
                    f"Player {player_id} is already queued for {mode}",
                    player_id=player_id,
                    mode=mode,
                )
            self._assert_no_stale_active(player_id, mode)

            entry = QueueEntry(
                player_id=player_id,
                mode=mode,
                rating=rating,
                min_rating=self.settings.queue_min_rating if min_rating is None else min_rating,
                max_rating=self.settings.queue_max_rating if max_rating is None else max_rating,
                joined_at=now,
                expires_at=now + timedelta(seconds=self.settings.queue_entry_ttl_seconds),
            )
            self._waiting.setdefault(mode, []).append(entry)
            self._active[key] = entry
            self._publish(QueueEntryChanged(entry=entry.to_dict(), occurred_at=now))
            logger.debug("Player %s joined %s queue (rating=%d)", player_id, mode, rating)

            match = self._pair_locked(mode, now)
        return entry, match

    def leave(self, player_id: str, mode: str, now: Optional[datetime] = None) -> QueueEntry:
        """
        Take a player out of the queue.

        Raises:
            InvalidMode: mode is not configured
            NotQueued: no active entry exists (including a second leave)
        """
        now = now or utc_now()
        with self._lock_for(mode):
            entry = self._active.get((player_id, mode))
            if entry is None:
                raise NotQueued(
                    f"Player {player_id} is not queued for {mode}",
                    player_id=player_id,
                    mode=mode,
                )
            self._close(entry, "left", now)
        logger.debug("Player %s left %s queue", player_id, mode)
        return entry

    def try_pair(self, mode: str, now: Optional[datetime] = None) -> Optional[Match]:
        """
        Expire stale entries, then form at most one match for ``mode``.

        Returns None when no pairing is currently possible. That is the
        normal "keep waiting" outcome, not an error.
        """
        now = now or utc_now()
        with self._lock_for(mode):
            self._expire_locked(mode, now)
            return self._pair_locked(mode, now)

    def pair_all(self, mode: str, now: Optional[datetime] = None) -> list[Match]:
        """Form as many matches as the current queue allows."""
        now = now or utc_now()
        matches: list[Match] = []
        with self._lock_for(mode):
            self._expire_locked(mode, now)
            while (match := self._pair_locked(mode, now)) is not None:
                matches.append(match)
        return matches

    # =========================================================================
    # Reads
    # =========================================================================

    def modes(self) -> list[str]:
        return list(self.settings.game_modes)

    def get_entry(self, player_id: str, mode: str) -> Optional[QueueEntry]:
        return self._active.get((player_id, mode))

    def active_entries(self, mode: str) -> list[QueueEntry]:
        with self._lock_for(mode):
            return list(self._waiting.get(mode, []))

    def queue_stats(self, mode: str, now: Optional[datetime] = None) -> dict[str, Any]:
        """Size and wait-time summary for one mode's queue."""
        now = now or utc_now()
        entries = self.active_entries(mode)
        waits = [entry.wait_seconds(now) for entry in entries]
        return {
            "mode": mode,
            "size": len(entries),
            "match_size": self.settings.match_size_for(mode),
            "oldest_wait_seconds": max(waits) if waits else 0.0,
            "average_wait_seconds": sum(waits) / len(waits) if waits else 0.0,
        }

    # =========================================================================
    # Internals (callers hold the mode lock)
    # =========================================================================

    def _lock_for(self, mode: str):
        if mode not in self.settings.game_modes:
            raise InvalidMode(f"Unknown game mode: {mode}", mode=mode)
        return self._locks.hold(mode)

    def _assert_no_stale_active(self, player_id: str, mode: str) -> None:
        """An active entry missing from the index means the locking broke."""
        for entry in self._waiting.get(mode, []):
            if entry.player_id == player_id and entry.active:
                logger.error(
                    "Duplicate active queue entry for player=%s mode=%s (entry=%s)",
                    player_id,
                    mode,
                    entry.id,
                )
                raise InvariantViolation(
                    "Duplicate active queue entry observed",
                    player_id=player_id,
                    mode=mode,
                    entry_id=entry.id,
                )

    def _compatible(self, a: QueueEntry, b: QueueEntry, now: datetime) -> bool:
        return within_bounds(a, b) and self.compatibility(a, b, now)

    def _pair_locked(self, mode: str, now: datetime) -> Optional[Match]:
        waiting = self._waiting.get(mode, [])
        size = self.settings.match_size_for(mode)
        if len(waiting) < size:
            return None

        for i, anchor in enumerate(waiting):
            group = [anchor]
            for candidate in waiting[i + 1:]:
                if all(self._compatible(member, candidate, now) for member in group):
                    group.append(candidate)
                    if len(group) == size:
                        return self._form_match(mode, group, now)

        logger.debug("No pairing possible in %s queue (%d waiting)", mode, len(waiting))
        return None

    def _form_match(self, mode: str, group: list[QueueEntry], now: datetime) -> Match:
        # Build the match before touching any entry so a failure leaves the
        # queue exactly as it was.
        match = Match(
            mode=mode,
            player_ids=tuple(entry.player_id for entry in group),
            created_at=now,
        )
        for entry in group:
            entry.match_id = match.id
            self._close(entry, "matched", now)

        if self.on_match is not None:
            self.on_match(match)

        self._publish(MatchFormed(match=match.to_dict(), source="queue", occurred_at=now))
        logger.info(
            "Match %s formed in %s queue: %s",
            match.id,
            mode,
            ", ".join(match.player_ids),
        )
        return match

    def _expire_locked(self, mode: str, now: datetime) -> list[QueueEntry]:
        expired = [entry for entry in self._waiting.get(mode, []) if entry.is_expired(now)]
        for entry in expired:
            self._close(entry, "expired", now)
            logger.warning(
                "Queue entry for %s in %s expired after %.0fs",
                entry.player_id,
                mode,
                entry.wait_seconds(now),
            )
        return expired

    def _close(self, entry: QueueEntry, reason: str, now: datetime) -> None:
        entry.active = False
        entry.closed_reason = reason
        self._active.pop(entry.key, None)
        waiting = self._waiting.get(entry.mode, [])
        if entry in waiting:
            waiting.remove(entry)
        self._publish(QueueEntryChanged(entry=entry.to_dict(), occurred_at=now))

    def _publish(self, event) -> None:
        if self.bus is not None:
            self.bus.publish(event)
