"""
Bracket nodes.

A bracket is a flat list of BracketNode. Nodes point at each other by list
index (``winner_to`` / ``loser_to`` are ``(node index, slot)`` pairs), never
by object reference. The double-elimination cross-links therefore form no
object cycles and a whole bracket serialises to plain dicts.

Each node has two slots. A slot is *settled* once we know what will occupy
it: a player, or nobody (a bye, or an empty feeder). When both slots are
settled the node resolves:

- two players  -> a match is scheduled
- one player   -> that player advances without playing (bye)
- no players   -> nothing is scheduled; "nobody" flows onward
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

# (node index, slot index)
SlotRef = tuple[int, int]

SECTIONS = ("winners", "losers", "grand_final", "grand_final_reset", "round_robin")


@dataclass
class BracketNode:
    index: int
    section: str
    round_number: int
    position: int
    round_code: str
    players: list[Optional[str]] = field(default_factory=lambda: [None, None])
    settled: list[bool] = field(default_factory=lambda: [False, False])
    winner_to: Optional[SlotRef] = None
    loser_to: Optional[SlotRef] = None
    match_id: Optional[str] = None
    winner_id: Optional[str] = None
    loser_id: Optional[str] = None
    resolved: bool = False
    is_bye: bool = False

    @property
    def ready(self) -> bool:
        return all(self.settled)

    @property
    def present_players(self) -> list[str]:
        return [p for p in self.players if p is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "section": self.section,
            "round_number": self.round_number,
            "position": self.position,
            "round_code": self.round_code,
            "players": list(self.players),
            "settled": list(self.settled),
            "winner_to": list(self.winner_to) if self.winner_to else None,
            "loser_to": list(self.loser_to) if self.loser_to else None,
            "match_id": self.match_id,
            "winner_id": self.winner_id,
            "loser_id": self.loser_id,
            "resolved": self.resolved,
            "is_bye": self.is_bye,
        }
