"""
Engine events and the in-process event bus.

The engine announces every state change it makes as an event. Persistence
and notification are subscribers: they run after the transition has been
applied, so a failing subscriber can be retried on its own without running
the transition again.

Events:
- MatchFormed: the queue or a bracket scheduled a new match
- MatchCompleted: a match got its final result (reported or forfeited)
- TournamentStateChanged: a tournament moved through its lifecycle
- QueueEntryChanged: a queue entry was opened or closed (persistence only)

Events carry plain-dict snapshots, never live engine objects, so a
subscriber cannot observe (or cause) a later mutation.

The bus is created at startup and handed to the components that publish;
``shutdown()`` flushes anything still deferred and refuses later events.

Usage:
    bus = EventBus()
    bus.subscribe(MatchFormed, notifier.on_match_formed)
    queue = MatchmakingQueue(bus=bus)
    ...
    bus.shutdown()
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from arena.errors import InvariantViolation
from arena.models import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class Event:
    """Base class for all engine events."""
    occurred_at: datetime = field(default_factory=utc_now)

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class MatchFormed(Event):
    match: dict[str, Any]
    # 'queue' or 'bracket'
    source: str = "queue"


@dataclass(frozen=True)
class MatchCompleted(Event):
    match: dict[str, Any]
    players: list[dict[str, Any]] = field(default_factory=list)
    # Tournament state (with bracket snapshot) after the result, if any
    tournament: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class TournamentStateChanged(Event):
    tournament: dict[str, Any]
    previous_status: Optional[str]
    status: str


@dataclass(frozen=True)
class QueueEntryChanged(Event):
    entry: dict[str, Any]


Handler = Callable[[Event], Any]


class EventBus:
    """
    Synchronous publish/subscribe bus with an optional deferred mode.

    In immediate mode (default) ``publish`` runs every matching handler
    before returning. With ``deferred=True`` events are queued until
    ``flush()``, which lets a caller publish while holding a lock and deliver
    once it has released it.

    A handler failure is logged and counted; it does not stop delivery to
    the remaining handlers. InvariantViolation is the exception: it is
    re-raised so corrupted state is never reported as success.
    """

    def __init__(self, deferred: bool = False):
        self.deferred = deferred
        self._subscribers: dict[type[Event], list[Handler]] = {}
        self._pending: deque[Event] = deque()
        self._lock = threading.Lock()
        self._dispatch_lock = threading.RLock()
        self._closed = False
        self.delivered = 0
        self.failures = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, event_type: type[Event], handler: Handler) -> None:
        """Register ``handler`` for ``event_type`` and its subclasses."""
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: type[Event], handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Event) -> None:
        if self._closed:
            logger.warning("Event bus closed, dropping %s", event.name)
            return
        if self.deferred:
            with self._lock:
                self._pending.append(event)
            return
        self._dispatch(event)

    def flush(self) -> int:
        """Deliver every deferred event. Returns how many were delivered."""
        count = 0
        # One flusher at a time keeps delivery in publish order
        with self._dispatch_lock:
            while True:
                with self._lock:
                    if not self._pending:
                        return count
                    event = self._pending.popleft()
                self._dispatch(event)
                count += 1

    def pending(self) -> int:
        return len(self._pending)

    def shutdown(self) -> int:
        """Flush deferred events, then refuse any further publishing."""
        flushed = self.flush()
        self._closed = True
        logger.info(
            "Event bus shut down (flushed=%d, delivered=%d, failures=%d)",
            flushed,
            self.delivered,
            self.failures,
        )
        return flushed

    def _handlers_for(self, event: Event) -> list[Handler]:
        with self._lock:
            handlers: list[Handler] = []
            for event_type in type(event).__mro__:
                handlers.extend(self._subscribers.get(event_type, ()))
            return handlers

    def _dispatch(self, event: Event) -> None:
        for handler in self._handlers_for(event):
            try:
                handler(event)
            except InvariantViolation:
                logger.error("Invariant violation while handling %s", event.name, exc_info=True)
                raise
            except Exception:
                self.failures += 1
                logger.exception("Subscriber %r failed on %s", handler, event.name)
            else:
                self.delivered += 1
