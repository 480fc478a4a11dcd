from __future__ import annotations

from typing import List, Optional, Sequence, Tuple, TypeVar
import random

from .matching import cards_match
from .types import (
    Card,
    CardColor,
    MatchType,
    Rank,
    Suit,
    RANKS,
    SUITS,
    SUIT_COLOR,
)


T = TypeVar("T")

# (rows, cols, total cards)
BOARD_DIMENSIONS = {
    "4x4": (4, 4, 16),
    "4x6": (4, 6, 24),
    "6x6": (6, 6, 36),
}


def board_dimensions(board_size: str) -> Tuple[int, int, int]:
    dims = BOARD_DIMENSIONS.get(board_size)
    if dims is None:
        raise ValueError(f"Unsupported board size: {board_size}")
    return dims


def card_color(suit: str) -> CardColor:
    return SUIT_COLOR[suit]


def shuffle(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """Unbiased Fisher-Yates shuffle returning a new list."""
    r = rng if rng is not None else random.Random()
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = r.randrange(i + 1)
        out[i], out[j] = out[j], out[i]
    return out


def _base_attributes(index: int) -> Tuple[Suit, Rank, CardColor]:
    suit = SUITS[index % len(SUITS)]
    rank = RANKS[(index // len(SUITS)) % len(RANKS)]
    return suit, rank, card_color(suit)


def _partner_attributes(
    suit: Suit,
    rank: Rank,
    color: CardColor,
    match_type: MatchType,
    rng: random.Random,
) -> Tuple[Suit, Rank, CardColor]:
    if match_type == "color":
        same_color = [s for s in SUITS if card_color(s) == color and s != suit]
        new_suit = rng.choice(same_color) if same_color else suit
        return new_suit, rank, color
    if match_type == "rank":
        others = [s for s in SUITS if s != suit]
        new_suit = rng.choice(others)
        return new_suit, rank, card_color(new_suit)
    if match_type == "suit":
        other_ranks = [r for r in RANKS if r != rank]
        return suit, rng.choice(other_ranks), color
    raise ValueError(f"Unknown match type: {match_type}")


def generate_pairs(
    board_size: str,
    match_type: MatchType,
    rng: Optional[random.Random] = None,
) -> List[Tuple[Card, Card]]:
    """Build the unshuffled (base, partner) pairs for a board."""
    r = rng if rng is not None else random.Random()
    _rows, _cols, total = board_dimensions(board_size)
    if total % 2 != 0:
        raise ValueError("Board must have an even number of cells")
    pairs: List[Tuple[Card, Card]] = []
    seq = 0
    for i in range(total // 2):
        suit, rank, color = _base_attributes(i)
        p_suit, p_rank, p_color = _partner_attributes(suit, rank, color, match_type, r)
        base = Card(id=f"card-{seq}", suit=suit, rank=rank, color=color, position=seq)
        partner = Card(id=f"card-{seq + 1}", suit=p_suit, rank=p_rank, color=p_color, position=seq + 1)
        seq += 2
        pairs.append((base, partner))
    return pairs


def generate_cards(
    board_size: str,
    match_type: MatchType,
    rng: Optional[random.Random] = None,
) -> Tuple[Card, ...]:
    r = rng if rng is not None else random.Random()
    flat: List[Card] = []
    for base, partner in generate_pairs(board_size, match_type, r):
        flat.append(base)
        flat.append(partner)
    shuffled = shuffle(flat, r)
    return tuple(
        Card(id=c.id, suit=c.suit, rank=c.rank, color=c.color, position=idx)
        for idx, c in enumerate(shuffled)
    )


def validate_pairs(cards: Sequence[Card], match_type: MatchType) -> bool:
    # Consecutive cards, as laid out before shuffling
    if len(cards) % 2 != 0:
        return False
    for i in range(0, len(cards), 2):
        if not cards_match(cards[i], cards[i + 1], match_type):
            return False
    return True


def card_label(card: Card) -> str:
    return f"{card.id}={card}"
