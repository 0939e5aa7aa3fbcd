"""Unit tests for the keyed lock registry."""

import threading

from arena.locks import KeyedLocks


def test_same_key_same_lock():
    locks = KeyedLocks()
    assert locks.get("pong") is locks.get("pong")
    assert locks.get("pong") is not locks.get("arkanoid")
    assert len(locks) == 2


def test_discard_drops_idle_lock():
    locks = KeyedLocks()
    with locks.hold("t1"):
        pass

    assert locks.discard("t1") is True
    assert "t1" not in locks
    assert locks.discard("t1") is False


def test_discard_keeps_held_lock():
    locks = KeyedLocks()
    holding = threading.Event()
    release = threading.Event()

    def holder():
        with locks.hold("t1"):
            holding.set()
            release.wait(timeout=5)

    thread = threading.Thread(target=holder)
    thread.start()
    holding.wait(timeout=5)
    try:
        assert locks.discard("t1") is False
        assert "t1" in locks
    finally:
        release.set()
        thread.join()
