"""Unit tests for the event bus."""

import pytest

from arena.errors import InvariantViolation
from arena.events import Event, EventBus, MatchFormed, QueueEntryChanged


def formed(match_id):
    return MatchFormed(match={"id": match_id})


def test_immediate_delivery():
    bus = EventBus()
    seen = []
    bus.subscribe(MatchFormed, seen.append)

    event = formed("m1")
    bus.publish(event)

    assert seen == [event]
    assert bus.delivered == 1


def test_base_class_subscription_sees_every_event():
    bus = EventBus()
    names = []
    bus.subscribe(Event, lambda e: names.append(e.name))

    bus.publish(formed("m1"))
    bus.publish(QueueEntryChanged(entry={"id": "q1"}))

    assert names == ["MatchFormed", "QueueEntryChanged"]


def test_deferred_events_wait_for_flush():
    bus = EventBus(deferred=True)
    seen = []
    bus.subscribe(MatchFormed, lambda e: seen.append(e.match["id"]))

    bus.publish(formed("m1"))
    bus.publish(formed("m2"))
    assert seen == []
    assert bus.pending() == 2

    assert bus.flush() == 2
    assert seen == ["m1", "m2"]
    assert bus.pending() == 0


def test_events_published_while_flushing_are_delivered_in_order():
    bus = EventBus(deferred=True)
    seen = []

    def chain(event):
        seen.append(event.match["id"])
        if event.match["id"] == "m1":
            bus.publish(formed("m3"))

    bus.subscribe(MatchFormed, chain)
    bus.publish(formed("m1"))
    bus.publish(formed("m2"))
    bus.flush()

    assert seen == ["m1", "m2", "m3"]


def test_failing_handler_does_not_block_others():
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("subscriber down")

    bus.subscribe(MatchFormed, broken)
    bus.subscribe(MatchFormed, seen.append)
    bus.publish(formed("m1"))

    assert len(seen) == 1
    assert bus.failures == 1
    assert bus.delivered == 1


def test_invariant_violation_propagates():
    bus = EventBus()

    def corrupt(event):
        raise InvariantViolation("duplicate row")

    bus.subscribe(MatchFormed, corrupt)
    with pytest.raises(InvariantViolation):
        bus.publish(formed("m1"))


def test_unsubscribe():
    bus = EventBus()
    seen = []
    bus.subscribe(MatchFormed, seen.append)
    bus.unsubscribe(MatchFormed, seen.append)

    bus.publish(formed("m1"))

    assert seen == []


def test_shutdown_flushes_then_drops():
    bus = EventBus(deferred=True)
    seen = []
    bus.subscribe(MatchFormed, seen.append)
    bus.publish(formed("m1"))

    assert bus.shutdown() == 1
    assert bus.closed

    bus.publish(formed("m2"))
    bus.flush()
    assert [e.match["id"] for e in seen] == ["m1"]
