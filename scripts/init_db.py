#!/usr/bin/env python3
"""
Create the Arena tables and report what is stored.

Production databases should be migrated with Alembic:
    alembic upgrade head

This script is the quick path for local SQLite databases and throwaway
environments:
    python scripts/init_db.py
    python scripts/init_db.py --database-url sqlite:///dev.db
    python scripts/init_db.py --close-stale
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Add src to path so this script can be run directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from arena.config import settings
from arena.db import SqlStore, get_engine, make_session_factory

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create the Arena tables.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override DATABASE_URL for this run.",
    )
    parser.add_argument(
        "--close-stale",
        action="store_true",
        help="Deactivate queue entries left active by a previous process.",
    )
    return parser


def main() -> int:
    args = _build_parser().parse_args()

    engine = get_engine(args.database_url)
    store = SqlStore(make_session_factory(engine))
    store.create_all()
    logger.info("Tables ready on %s", engine.url.render_as_string(hide_password=True))

    if args.close_stale:
        closed = store.close_stale_queue_entries()
        print(f"Closed stale queue entries: {closed}")

    players = store.load_players()
    print(f"Players stored: {len(players)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
