"""
Bracket position utility functions.

Provides positional math for elimination brackets. Draw positions are
1-indexed within each round and follow standard bracket progression:

    Round N, position p  ->  Round N+1, position ceil(p/2)

So positions 1 and 2 in the first round feed into position 1 of the
second round, positions 3 and 4 feed into position 2, etc.

These functions are used by:
- Bracket building (laying out rounds and advancement pointers)
- Round labelling (R64 ... QF, SF, F)
- Double elimination (sizing the losers bracket)
"""

import math
from typing import Optional


# Round codes keyed by the number of entrants the round starts with
ENTRANTS_TO_ROUND_CODE = {
    128: "R128",
    64: "R64",
    32: "R32",
    16: "R16",
    8: "QF",
    4: "SF",
    2: "F",
}


def next_power_of_two(n: int) -> int:
    """
    Smallest power of two that is >= n (and at least 2).

    Examples:
        >>> next_power_of_two(5)
        8
        >>> next_power_of_two(8)
        8
        >>> next_power_of_two(1)
        2
    """
    size = 2
    while size < n:
        size *= 2
    return size


def rounds_for_size(bracket_size: int) -> int:
    """
    Number of rounds in a single-elimination bracket of ``bracket_size`` slots.

    Examples:
        >>> rounds_for_size(8)
        3
        >>> rounds_for_size(2)
        1
    """
    return int(math.log2(bracket_size))


def get_next_draw_position(position: int) -> int:
    """
    Compute the draw position in the next round.

    Winner of position p feeds into position ceil(p/2) in the next round.

    Examples:
        >>> get_next_draw_position(1)
        1
        >>> get_next_draw_position(2)
        1
        >>> get_next_draw_position(3)
        2
    """
    return math.ceil(position / 2)


def get_feeder_positions(position: int) -> tuple[int, int]:
    """
    Get the two feeder positions from the previous round that feed
    into this position.

    Position p in round N+1 is fed by positions 2p-1 and 2p in round N.

    Examples:
        >>> get_feeder_positions(1)
        (1, 2)
        >>> get_feeder_positions(3)
        (5, 6)
    """
    return (2 * position - 1, 2 * position)


def get_feeder_slot(position: int) -> int:
    """Slot (0 = top, 1 = bottom) a position's winner takes in the next round."""
    return (position - 1) % 2


def get_round_code(round_number: int, bracket_size: int) -> str:
    """
    Draw code for a single-elimination round.

    Args:
        round_number: 1-indexed round
        bracket_size: Slots in the first round (power of two)

    Examples:
        >>> get_round_code(1, 8)
        'QF'
        >>> get_round_code(3, 8)
        'F'
        >>> get_round_code(1, 64)
        'R64'
    """
    entrants = bracket_size // (2 ** (round_number - 1))
    return ENTRANTS_TO_ROUND_CODE.get(entrants, f"R{entrants}")


def get_matches_in_round(round_number: int, bracket_size: int) -> int:
    return bracket_size // (2 ** round_number)


def losers_round_count(bracket_size: int) -> int:
    """
    Rounds in the losers bracket of a double-elimination draw.

    A bracket with k winners rounds needs 2(k-1) losers rounds: each
    winners round after the first drops its losers into their own round.

    Examples:
        >>> losers_round_count(2)
        0
        >>> losers_round_count(4)
        2
        >>> losers_round_count(8)
        4
    """
    return max(2 * (rounds_for_size(bracket_size) - 1), 0)


def losers_matches_in_round(losers_round: int, bracket_size: int) -> Optional[int]:
    """
    Matches in a 1-indexed losers round, or None if the round does not exist.

    Rounds come in pairs of equal size: L1/L2 have size/4 matches,
    L3/L4 have size/8, and so on.

    Examples:
        >>> losers_matches_in_round(1, 8)
        2
        >>> losers_matches_in_round(2, 8)
        2
        >>> losers_matches_in_round(4, 8)
        1
    """
    if losers_round < 1 or losers_round > losers_round_count(bracket_size):
        return None
    pair = (losers_round + 1) // 2
    return bracket_size // (2 ** (pair + 1))
