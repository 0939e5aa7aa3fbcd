"""
Compatibility predicates for queue pairing.

A predicate takes two queue entries and the current time and says whether
they may be placed in the same match. The queue always applies the
entries' own rating bounds on top of whichever predicate is configured.

- always_compatible: pure first-come, first-served
- SkillBand: rating difference must fit inside a band that widens the
  longer either player has waited, so nobody waits forever just because
  no one of the same skill is online
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from arena.config import Settings
from arena.models import QueueEntry

Compatibility = Callable[[QueueEntry, QueueEntry, datetime], bool]


def always_compatible(a: QueueEntry, b: QueueEntry, now: datetime) -> bool:
    return True


def within_bounds(a: QueueEntry, b: QueueEntry) -> bool:
    """Each entry's rating must sit inside the other's [min, max] bounds."""
    return a.accepts(b.rating) and b.accepts(a.rating)


@dataclass(frozen=True)
class SkillBand:
    """
    Rating-difference band that grows with wait time.

    tolerance(entry) = base + growth_per_second * seconds waited,
    capped at ``maximum`` when one is set. Two entries are compatible when
    their rating difference fits the wider of their two tolerances, so the
    longest-waiting player's band decides.
    """

    base: float = 100.0
    growth_per_second: float = 2.0
    maximum: Optional[float] = 1000.0

    def tolerance(self, entry: QueueEntry, now: datetime) -> float:
        band = self.base + self.growth_per_second * entry.wait_seconds(now)
        if self.maximum is not None:
            band = min(band, self.maximum)
        return band

    def __call__(self, a: QueueEntry, b: QueueEntry, now: datetime) -> bool:
        widest = max(self.tolerance(a, now), self.tolerance(b, now))
        return abs(a.rating - b.rating) <= widest


def compatibility_from_settings(settings: Settings) -> Compatibility:
    """Pick the predicate the settings ask for."""
    if not settings.skill_matching_enabled:
        return always_compatible
    return SkillBand(
        base=settings.skill_tolerance_base,
        growth_per_second=settings.skill_tolerance_growth_per_second,
        maximum=settings.skill_tolerance_max,
    )
