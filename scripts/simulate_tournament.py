#!/usr/bin/env python3
"""
Run a tournament to completion with random results.

Useful for eyeballing bracket layouts and for smoke-testing persistence:

    python scripts/simulate_tournament.py --players 6
    python scripts/simulate_tournament.py --players 8 --bracket-type double_elimination
    python scripts/simulate_tournament.py --players 5 --bracket-type round_robin --persist
"""
from __future__ import annotations

import argparse
import logging
import random
import sys
from pathlib import Path

# Add src to path so this script can be run directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from arena.config import KNOWN_BRACKET_TYPES, KNOWN_SEEDING_METHODS, settings
from arena.db import SqlStore, get_engine, make_session_factory
from arena.errors import ArenaError
from arena.service import ArenaService

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Simulate a tournament with random results.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--players", type=int, default=8, help="Roster size.")
    parser.add_argument(
        "--bracket-type",
        default=settings.default_bracket_type,
        choices=KNOWN_BRACKET_TYPES,
    )
    parser.add_argument(
        "--seeding",
        default=settings.default_seeding_method,
        choices=KNOWN_SEEDING_METHODS,
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed for results.")
    parser.add_argument(
        "--persist",
        action="store_true",
        help="Write every event to DATABASE_URL.",
    )
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    rng = random.Random(args.seed)

    store = None
    if args.persist:
        store = SqlStore(make_session_factory(get_engine()))
        store.create_all()

    service = ArenaService(store=store, rng=rng)
    service.startup()

    roster = [f"player-{i + 1}" for i in range(args.players)]
    try:
        created = service.create_tournament(
            {
                "name": f"Simulated {args.bracket_type}",
                "roster": roster,
                "bracket_type": args.bracket_type,
                "seeding": args.seeding,
                "auto_start": False,
            }
        )
        service.start_tournament(created["id"])
    except ArenaError as exc:
        print(f"ERROR: {exc}")
        return 1

    tournament = service.orchestrator.get_tournament(created["id"])
    reported = 0
    while tournament.is_open:
        pending = tournament.engine.pending_matches()
        if not pending:
            logger.error("Tournament %s is open with nothing to play", tournament.id)
            return 1
        match = pending[0]
        winner = rng.choice(match.player_ids)
        scores = {
            player_id: 11 if player_id == winner else rng.randint(0, 9)
            for player_id in match.player_ids
        }
        service.report_match_result(
            {"match_id": match.id, "winner_id": winner, "scores": scores}
        )
        reported += 1
        print(f"{match.round_code:>4}  {' vs '.join(match.player_ids):<28} -> {winner}")

    print("-" * 60)
    print(f"Matches played: {reported}")
    print(f"Byes:           {tournament.engine.bye_count}")
    print(f"Champion:       {tournament.winner_id}")
    print("Standings:")
    for position, standing in enumerate(tournament.engine.standings(), start=1):
        print(f"  {position:>2}. {standing.player_id}")

    service.shutdown()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
