"""
Tournaments module.

- TournamentOrchestrator: lifecycle, auto-start, timeouts, result routing
- Tournament: one tournament and the bracket it owns
"""

from arena.tournaments.orchestrator import (
    Evaluation,
    ResultOutcome,
    Tournament,
    TournamentOrchestrator,
    choose_forfeiting_player,
)

__all__ = [
    "Evaluation",
    "ResultOutcome",
    "Tournament",
    "TournamentOrchestrator",
    "choose_forfeiting_player",
]
