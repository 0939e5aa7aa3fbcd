"""
Pytest configuration and fixtures.

This file is automatically loaded by pytest and provides
shared fixtures for all tests.
"""

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from arena.config import Settings
from arena.db.models import Base
from arena.db.session import make_session_factory
from arena.db.store import SqlStore
from arena.events import EventBus


@pytest.fixture(scope="session")
def test_engine():
    """
    Create a test database engine.

    Uses SQLite in-memory for fast tests that don't need
    PostgreSQL-specific features.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
    )
    return engine


@pytest.fixture(scope="session")
def tables(test_engine):
    """
    Create all tables for testing.

    This fixture runs once per test session.
    """
    Base.metadata.create_all(test_engine)
    yield
    Base.metadata.drop_all(test_engine)


@pytest.fixture
def db_session(test_engine, tables):
    """
    Create a database session for a test.

    Each test gets its own session with automatic rollback,
    ensuring tests don't affect each other.
    """
    connection = test_engine.connect()
    transaction = connection.begin()

    Session = sessionmaker(bind=connection)
    session = Session()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def settings():
    """
    Settings for engine tests.

    No start delay and a one-minute match timeout so tests can step
    time explicitly.
    """
    return Settings(
        database_url="sqlite://",
        auto_start_delay_seconds=0,
        match_timeout_seconds=60,
        sweep_interval_seconds=0.01,
        rating_update_interval_seconds=0,
        queue_entry_ttl_seconds=300,
    )


@pytest.fixture
def bus():
    """Immediate-mode bus: handlers run inside publish."""
    return EventBus()


@pytest.fixture
def t0():
    return datetime(2026, 10, 19, 12, 0, 0)


@pytest.fixture
def store(settings):
    """
    SqlStore on a private in-memory database.

    Unlike db_session, the store commits, so each test gets a fresh
    database shared across connections through StaticPool.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    store = SqlStore(make_session_factory(engine), settings=settings)
    store.create_all()
    yield store
    engine.dispose()
