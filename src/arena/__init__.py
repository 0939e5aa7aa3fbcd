"""
Arena - Matchmaking and Tournament Engine

Pairs waiting players into matches and runs bracketed tournaments for
small competitive games, keeping per-player statistics and ratings.

Main components:
- matchmaking: Per-mode queues with skill-aware pairing
- bracket: Single elimination, double elimination and round robin brackets
- tournaments: Tournament lifecycle, auto-start and timeout forfeits
- rating: Player statistics, rating and rank derivation
- events: Deferred event bus connecting the engine to persistence
- db: SQLAlchemy models and the event-driven SQL store
- service: Request-facing facade
"""

__version__ = "0.1.0"
