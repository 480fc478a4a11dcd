from __future__ import annotations

from typing import Optional, Sequence

from .types import Card, IndexPair, MatchType


def cards_match(a: Card, b: Card, match_type: MatchType) -> bool:
    if match_type == "color":
        return a.color == b.color
    if match_type == "rank":
        return a.rank == b.rank
    if match_type == "suit":
        return a.suit == b.suit
    return False


def find_matching_pair(cards: Sequence[Card], match_type: MatchType) -> Optional[IndexPair]:
    """First pair of available cards satisfying the criterion, by position."""
    avail = [c for c in cards if c.is_available]
    for i in range(len(avail)):
        for j in range(i + 1, len(avail)):
            if cards_match(avail[i], avail[j], match_type):
                return (avail[i].position, avail[j].position)
    return None
