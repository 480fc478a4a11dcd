from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Literal, Optional, Tuple, TypeAlias

Suit = Literal["hearts", "diamonds", "clubs", "spades"]
Rank = Literal["A", "2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K"]
CardColor = Literal["red", "black"]
MatchType = Literal["color", "rank", "suit"]
BoardSize = Literal["4x4", "4x6", "6x6"]
GameMode = Literal["ai", "local-multiplayer", "ai-vs-ai"]
AIDifficulty = Literal["easy", "medium", "hard", "expert"]
GameStatus = Literal["setup", "playing", "paused", "finished"]
PlayerType = Literal["human", "ai"]

# Board position pair, as chosen by an AI or returned by a hint
IndexPair: TypeAlias = Tuple[int, int]

# Order matters: deck generation cycles through these by index
SUITS: Tuple[Suit, ...] = ("hearts", "diamonds", "clubs", "spades")
RANKS: Tuple[Rank, ...] = ("A", "2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K")

SUIT_COLOR: Dict[str, CardColor] = {
    "hearts": "red",
    "diamonds": "red",
    "clubs": "black",
    "spades": "black",
}

SUIT_SYMBOL: Dict[str, str] = {
    "hearts": "♥",
    "diamonds": "♦",
    "clubs": "♣",
    "spades": "♠",
}

MATCH_TYPES: Tuple[MatchType, ...] = ("color", "rank", "suit")
GAME_MODES: Tuple[GameMode, ...] = ("ai", "local-multiplayer", "ai-vs-ai")
DIFFICULTIES: Tuple[AIDifficulty, ...] = ("easy", "medium", "hard", "expert")


@dataclass(frozen=True)
class Card:
    id: str
    suit: Suit
    rank: Rank
    color: CardColor
    position: int
    is_flipped: bool = False
    is_matched: bool = False

    @property
    def is_available(self) -> bool:
        return not self.is_flipped and not self.is_matched

    def __str__(self) -> str:
        return f"{self.rank}{SUIT_SYMBOL[self.suit]}"


CardPair = Tuple[Card, Card]


@dataclass(frozen=True)
class Player:
    id: str
    name: str
    type: PlayerType
    score: int = 0
    matches: Tuple[CardPair, ...] = ()
    ai_difficulty: Optional[AIDifficulty] = None

    @property
    def is_ai(self) -> bool:
        return self.type == "ai"


@dataclass(frozen=True)
class Move:
    player_id: str
    card_ids: Tuple[str, str]
    timestamp: float
    is_match: bool
