"""Shared status definitions and helpers.

This module is the single source of truth for the match and tournament
state vocabularies reused by the queue, the bracket engine, the
orchestrator and the persistence layer.
"""

from __future__ import annotations

from typing import Iterable, Literal

MatchStatus = Literal["scheduled", "ongoing", "completed", "forfeited"]
TournamentStatus = Literal["upcoming", "ongoing", "completed", "cancelled"]
BracketType = Literal["single_elimination", "double_elimination", "round_robin"]

# Individual match statuses.
ALL_MATCH_STATUSES: tuple[str, ...] = (
    "scheduled",
    "ongoing",
    "completed",
    "forfeited",
)

# Individual tournament statuses.
ALL_TOURNAMENT_STATUSES: tuple[str, ...] = (
    "upcoming",
    "ongoing",
    "completed",
    "cancelled",
)

MATCH_STATUS_GROUPS: dict[str, tuple[str, ...]] = {
    # Matches still awaiting a result.
    "pending": ("scheduled", "ongoing"),
    # Matches that carry a final result and must never change again.
    "terminal": ("completed", "forfeited"),
    "all": ALL_MATCH_STATUSES,
}

TOURNAMENT_STATUS_GROUPS: dict[str, tuple[str, ...]] = {
    # Tournaments that still accept roster changes or results.
    "open": ("upcoming", "ongoing"),
    # Tournaments where every further mutation is refused.
    "closed": ("completed", "cancelled"),
    "all": ALL_TOURNAMENT_STATUSES,
}

# Allowed tournament transitions (from -> permitted targets).
TOURNAMENT_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "upcoming": ("ongoing", "cancelled"),
    "ongoing": ("completed", "cancelled"),
    "completed": (),
    "cancelled": (),
}


def get_status_group(group_name: str) -> tuple[str, ...]:
    """Return a named match status group, raising KeyError for unknown names."""
    return MATCH_STATUS_GROUPS[group_name]


def is_terminal_match_status(status: str) -> bool:
    return status in MATCH_STATUS_GROUPS["terminal"]


def is_closed_tournament_status(status: str) -> bool:
    return status in TOURNAMENT_STATUS_GROUPS["closed"]


def can_transition(current: str, target: str) -> bool:
    """Whether a tournament may move from ``current`` to ``target``."""
    return target in TOURNAMENT_TRANSITIONS.get(current, ())


def normalize_status_filter(
    raw_statuses: Iterable[str] | None,
    *,
    default_group: str = "pending",
) -> list[str]:
    """Normalize requested match statuses against known values.

    - If no statuses are provided, returns the statuses from ``default_group``.
    - Unknown statuses are ignored.
    - Order is preserved and duplicates are removed.
    """
    if raw_statuses is None:
        return list(get_status_group(default_group))

    seen: set[str] = set()
    normalized: list[str] = []

    for raw in raw_statuses:
        status = raw.strip().lower()
        if not status or status in seen or status not in ALL_MATCH_STATUSES:
            continue
        seen.add(status)
        normalized.append(status)

    if normalized:
        return normalized

    return list(get_status_group(default_group))
