from __future__ import annotations

from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterable, List, Optional, Sequence, Set, Tuple
import asyncio
import random

from .deck import shuffle
from .matching import cards_match
from .types import AIDifficulty, Card, IndexPair, MatchType, Move, DIFFICULTIES


@dataclass(frozen=True)
class DifficultyProfile:
    memory_limit: int
    memory_reliability: float
    optimal_play_rate: float
    inference_confidence: float  # 0.0 disables inferred matching
    reaction_ms: Tuple[int, int]


DIFFICULTY_PROFILES: Dict[str, DifficultyProfile] = {
    "easy": DifficultyProfile(3, 0.70, 0.30, 0.0, (1000, 2000)),
    "medium": DifficultyProfile(7, 0.85, 0.60, 0.60, (500, 1000)),
    "hard": DifficultyProfile(12, 0.95, 0.85, 0.85, (200, 500)),
    "expert": DifficultyProfile(20, 1.00, 0.95, 0.98, (100, 300)),
}

# Trailing window of opponent moves kept for pattern notes
OPPONENT_WINDOW = 5


def profile_for(difficulty: str) -> DifficultyProfile:
    prof = DIFFICULTY_PROFILES.get(difficulty)
    if prof is None:
        raise ValueError(f"Unknown AI difficulty: {difficulty}")
    return prof


def difficulty_info(difficulty: AIDifficulty) -> Dict[str, object]:
    prof = profile_for(difficulty)
    lo, hi = prof.reaction_ms
    return {
        "reactionTime": {"min": lo, "max": hi},
        "optimalPlayRate": prof.optimal_play_rate,
        "memoryLimit": prof.memory_limit,
        "memoryReliability": prof.memory_reliability,
    }


def available_positions(cards: Sequence[Card]) -> List[int]:
    return [i for i, c in enumerate(cards) if c.is_available]


def is_legal_move(cards: Sequence[Card], move: Optional[IndexPair]) -> bool:
    if move is None:
        return False
    i, j = move
    if i == j:
        return False
    n = len(cards)
    if not (0 <= i < n and 0 <= j < n):
        return False
    return cards[i].is_available and cards[j].is_available


class AIMemory:
    """
    Per-seat recollection of the board.

    Entries are keyed by board position and kept in recency order (oldest
    first); a card seen again moves to the back. The snapshot keeps the card
    identity captured when it was face up, with the flip/match flags synced to
    what the board showed last.
    """

    def __init__(self, difficulty: AIDifficulty) -> None:
        self.difficulty: AIDifficulty = difficulty
        self.known_cards: "OrderedDict[int, Card]" = OrderedDict()
        self.known_pairs: List[IndexPair] = []
        self.opponent_moves: Deque[Move] = deque(maxlen=OPPONENT_WINDOW)
        self.patterns: List[str] = []
        # Face-up positions already rolled for retention during this reveal
        self._rolled: Set[int] = set()

    def __len__(self) -> int:
        return len(self.known_cards)

    def __contains__(self, pos: object) -> bool:
        return pos in self.known_cards

    def recall(self, pos: int) -> Optional[Card]:
        return self.known_cards.get(pos)

    def remember(self, pos: int, card: Card) -> None:
        self.known_cards[pos] = card
        self.known_cards.move_to_end(pos)

    def forget(self, pos: int) -> None:
        self.known_cards.pop(pos, None)
        self.known_pairs = [p for p in self.known_pairs if pos not in p]

    def mark_revealed(self, pos: int) -> bool:
        """Record a face-up position; True only the first time for this reveal."""
        if pos in self._rolled:
            return False
        self._rolled.add(pos)
        return True

    def clear_revealed(self, pos: int) -> None:
        self._rolled.discard(pos)

    def clear(self) -> None:
        self.known_cards.clear()
        self.known_pairs = []
        self.opponent_moves.clear()
        self.patterns = []
        self._rolled.clear()

    def pair_positions(self) -> Set[int]:
        out: Set[int] = set()
        for a, b in self.known_pairs:
            out.add(a)
            out.add(b)
        return out

    def purge_stale(self, cards: Sequence[Card]) -> int:
        """Drop entries that point at matched, missing or replaced cards."""
        stale: List[int] = []
        for pos, snap in self.known_cards.items():
            if pos < 0 or pos >= len(cards):
                stale.append(pos)
                continue
            live = cards[pos]
            if live.is_matched or live.id != snap.id:
                stale.append(pos)
        for pos in stale:
            self.known_cards.pop(pos, None)
        if stale:
            gone = set(stale)
            self.known_pairs = [(a, b) for a, b in self.known_pairs if a not in gone and b not in gone]
        return len(stale)

    def sync_face_down(self, pos: int, card: Card) -> None:
        snap = self.known_cards.get(pos)
        if snap is None:
            return
        # Identity stays as remembered; only the flags follow the board
        self.known_cards[pos] = Card(
            id=snap.id,
            suit=snap.suit,
            rank=snap.rank,
            color=snap.color,
            position=pos,
            is_flipped=card.is_flipped,
            is_matched=card.is_matched,
        )

    def recompute_pairs(self, match_type: MatchType) -> None:
        entries = list(self.known_cards.items())
        pairs: List[IndexPair] = []
        for i in range(len(entries)):
            pi, ci = entries[i]
            for j in range(i + 1, len(entries)):
                pj, cj = entries[j]
                if cards_match(ci, cj, match_type):
                    pairs.append((pi, pj))
        self.known_pairs = pairs

    def enforce_capacity(self, limit: int, rng: random.Random) -> List[int]:
        """Evict down to `limit` entries; returns evicted positions."""
        if len(self.known_cards) <= limit:
            return []
        entries = list(self.known_cards.items())
        if self.difficulty in ("easy", "medium"):
            keep = entries[-limit:] if limit > 0 else []
        else:
            paired = self.pair_positions()
            keep = [e for e in entries if e[0] in paired][:limit]
            rest = [e for e in entries if e[0] not in paired]
            while len(keep) < limit and rest:
                keep.append(rest.pop(rng.randrange(len(rest))))
            # Recency order survives the random fill
            order = {pos: k for k, (pos, _c) in enumerate(entries)}
            keep.sort(key=lambda e: order[e[0]])
        kept = {pos for pos, _c in keep}
        evicted = [pos for pos, _c in entries if pos not in kept]
        self.known_cards = OrderedDict(keep)
        self.known_pairs = [(a, b) for a, b in self.known_pairs if a in kept and b in kept]
        return evicted

    def observe_opponent(self, moves: Iterable[Move]) -> None:
        self.opponent_moves.clear()
        self.opponent_moves.extend(moves)
        notes: List[str] = []
        recent = list(self.opponent_moves)
        if len(recent) >= 3:
            notes.append("focused_area")
        if len(recent) >= 2 and recent[-1].is_match and recent[-2].is_match:
            notes.append("streak")
        self.patterns = notes


@dataclass
class AIExplain:
    strategy: str
    move: Optional[IndexPair]
    reason: str
    corrected: bool = False


class AIPlayer:
    def __init__(
        self,
        difficulty: AIDifficulty,
        *,
        seat_id: Optional[str] = None,
        rng: Optional[random.Random] = None,
        delay_scale: float = 1.0,
    ) -> None:
        if difficulty not in DIFFICULTIES:
            raise ValueError(f"Unknown AI difficulty: {difficulty}")
        self.difficulty: AIDifficulty = difficulty
        self.profile = profile_for(difficulty)
        self.seat_id = seat_id
        self.rng = rng if rng is not None else random.Random()
        self.delay_scale = delay_scale
        self.memory = AIMemory(difficulty)
        self.explain: Optional[AIExplain] = None

    def reset(self) -> None:
        self.memory.clear()
        self.explain = None

    def reaction_delay(self) -> float:
        """Seconds of simulated thinking before a move is committed."""
        lo, hi = self.profile.reaction_ms
        return self.rng.uniform(lo, hi) / 1000.0 * self.delay_scale

    # --- memory maintenance ---

    def observe(
        self,
        cards: Sequence[Card],
        match_type: MatchType,
        opponent_moves: Sequence[Move] = (),
    ) -> None:
        mem = self.memory
        mem.purge_stale(cards)
        for pos, card in enumerate(cards):
            if card.is_matched:
                mem.forget(pos)
                mem.clear_revealed(pos)
            elif card.is_flipped:
                if not mem.mark_revealed(pos):
                    if pos in mem:
                        mem.remember(pos, card)
                    continue
                if self.rng.random() < self.profile.memory_reliability:
                    mem.remember(pos, card)
            else:
                mem.clear_revealed(pos)
                mem.sync_face_down(pos, card)
        mem.recompute_pairs(match_type)
        if mem.enforce_capacity(self.profile.memory_limit, self.rng):
            mem.recompute_pairs(match_type)
        if self.seat_id is not None:
            theirs = [m for m in opponent_moves if m.player_id != self.seat_id]
        else:
            theirs = list(opponent_moves)
        mem.observe_opponent(theirs[-OPPONENT_WINDOW:])

    # --- decision ---

    async def decide(
        self,
        cards: Sequence[Card],
        match_type: MatchType,
        opponent_moves: Sequence[Move] = (),
    ) -> Optional[IndexPair]:
        """
        Pick two distinct available positions, or None when fewer than two
        cards are left to flip. Sleeps the reaction delay before choosing.
        """
        self.observe(cards, match_type, opponent_moves)
        if len(available_positions(cards)) < 2:
            self.explain = AIExplain("none", None, "fewer than two available cards")
            return None
        delay = self.reaction_delay()
        if delay > 0:
            await asyncio.sleep(delay)
        return self._select(cards, match_type)

    def choose_move(
        self,
        cards: Sequence[Card],
        match_type: MatchType,
        opponent_moves: Sequence[Move] = (),
    ) -> Optional[IndexPair]:
        self.observe(cards, match_type, opponent_moves)
        if len(available_positions(cards)) < 2:
            self.explain = AIExplain("none", None, "fewer than two available cards")
            return None
        return self._select(cards, match_type)

    def _select(self, cards: Sequence[Card], match_type: MatchType) -> Optional[IndexPair]:
        avail = available_positions(cards)
        move: Optional[IndexPair] = None
        strategy = "random"
        reason = "uniform random pick"
        if self.rng.random() < self.profile.optimal_play_rate:
            move = self._known_match(cards, match_type, avail)
            if move is not None:
                strategy, reason = "known_match", "remembered pair"
            if move is None and self.difficulty in ("hard", "expert"):
                move = self._strategic_move(avail)
                if move is not None:
                    strategy = "strategic"
                    reason = "reveal unseen cards" if self.difficulty == "expert" else "avoid known pairs"
            if move is None and self.profile.inference_confidence > 0.0:
                move = self._inferred_match(cards, match_type, avail)
                if move is not None:
                    strategy, reason = "inferred_match", "remembered card with a matching partner"
        if move is None:
            move = self._random_move(avail)
        final, corrected = self._validate_and_correct(cards, match_type, move)
        if corrected:
            strategy, reason = "corrected", "stale memory replaced with an available pick"
        self.explain = AIExplain(strategy, final, reason, corrected)
        return final

    def _known_match(self, cards: Sequence[Card], match_type: MatchType, avail: List[int]) -> Optional[IndexPair]:
        avail_set = set(avail)
        for a, b in self.memory.known_pairs:
            if a not in avail_set or b not in avail_set:
                continue
            ra = self.memory.recall(a)
            rb = self.memory.recall(b)
            if ra is not None and rb is not None and cards_match(ra, rb, match_type):
                return (a, b)
        return None

    def _pick_two(self, candidates: List[int]) -> Optional[IndexPair]:
        if len(candidates) < 2:
            return None
        shuffled = shuffle(candidates, self.rng)
        return (shuffled[0], shuffled[1])

    def _strategic_move(self, avail: List[int]) -> Optional[IndexPair]:
        if self.difficulty == "expert":
            unseen = [i for i in avail if i not in self.memory]
            return self._pick_two(unseen)
        if self.difficulty == "hard":
            paired = self.memory.pair_positions()
            return self._pick_two([i for i in avail if i not in paired])
        return None

    def _inferred_match(self, cards: Sequence[Card], match_type: MatchType, avail: List[int]) -> Optional[IndexPair]:
        avail_set = set(avail)
        conf = self.profile.inference_confidence
        for pos, snap in list(self.memory.known_cards.items()):
            if pos not in avail_set:
                continue
            # Imperfect recollection: the card may not come to mind this turn
            if self.rng.random() >= conf:
                continue
            unseen = [i for i in avail if i != pos and i not in self.memory]
            seen = [i for i in avail if i != pos and i in self.memory]
            for other in unseen + seen:
                if cards_match(snap, cards[other], match_type):
                    return (pos, other)
        return None

    def _random_move(self, avail: List[int]) -> Optional[IndexPair]:
        return self._pick_two(avail)

    def _validate_and_correct(
        self,
        cards: Sequence[Card],
        match_type: MatchType,
        move: Optional[IndexPair],
    ) -> Tuple[Optional[IndexPair], bool]:
        if is_legal_move(cards, move):
            return move, False
        self.memory.purge_stale(cards)
        self.memory.recompute_pairs(match_type)
        avail = available_positions(cards)
        if len(avail) < 2:
            return None, True
        retry = self._random_move(avail)
        if is_legal_move(cards, retry):
            return retry, True
        # Emergency self-repair
        self.memory.clear()
        return (avail[0], avail[1]), True


def create_ai_player(
    difficulty: AIDifficulty,
    seat_id: Optional[str] = None,
    rng: Optional[random.Random] = None,
    delay_scale: float = 1.0,
) -> AIPlayer:
    return AIPlayer(difficulty, seat_id=seat_id, rng=rng, delay_scale=delay_scale)


def evaluate_move(
    move: IndexPair,
    cards: Sequence[Card],
    match_type: MatchType,
    difficulty: AIDifficulty,
) -> Dict[str, object]:
    """Score a move for analysis: 100 for a match, 60 for fresh information, 30 otherwise."""
    i, j = move
    if not (0 <= i < len(cards) and 0 <= j < len(cards)) or i == j:
        return {"isValid": False, "quality": 0, "reasoning": "Invalid card indices"}
    a, b = cards[i], cards[j]
    is_match = cards_match(a, b, match_type)
    if is_match:
        quality, reasoning = 100, "Perfect match found"
    elif not a.is_flipped and not b.is_flipped:
        quality, reasoning = 60, "Good information gathering move"
    else:
        quality, reasoning = 30, "Suboptimal move - revealing known cards"
    threshold = profile_for(difficulty).optimal_play_rate * 100
    return {
        "isValid": True,
        "quality": quality,
        "reasoning": reasoning,
        "isMatch": is_match,
        "difficultyAppropriate": quality >= threshold,
    }
