from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple, Union, cast
import random
import time

from .types import (
    AIDifficulty,
    BoardSize,
    Card,
    CardPair,
    GameMode,
    GameStatus,
    IndexPair,
    MatchType,
    Move,
    Player,
    DIFFICULTIES,
    GAME_MODES,
    MATCH_TYPES,
    RANKS,
    SUITS,
    SUIT_COLOR,
)
from .deck import BOARD_DIMENSIONS, card_label, generate_cards
from .matching import cards_match, find_matching_pair


SCHEMA_VERSION = 1


@dataclass(frozen=True)
class GameSettings:
    sound_enabled: bool = True
    animation_speed: Literal["slow", "normal", "fast"] = "normal"
    theme: str = "dark"
    show_timer: bool = True
    hints_enabled: bool = False
    card_theme: Literal["classic", "modern", "minimal"] = "classic"
    turn_time_limit: Optional[int] = None  # seconds


@dataclass(frozen=True)
class GameConfig:
    game_mode: GameMode
    match_type: MatchType
    board_size: BoardSize
    player1_name: str = "Player 1"
    player2_name: Optional[str] = None
    ai_difficulty: Optional[AIDifficulty] = None
    ai2_difficulty: Optional[AIDifficulty] = None
    settings: Optional[GameSettings] = None


@dataclass(frozen=True)
class GameState:
    game_mode: GameMode
    match_type: MatchType
    board_size: BoardSize
    current_player: str
    players: Tuple[Player, ...]
    cards: Tuple[Card, ...]
    flipped_cards: Tuple[Card, ...] = ()
    matched_pairs: Tuple[CardPair, ...] = ()
    game_status: GameStatus = "setup"
    turn_start_time: Optional[float] = None
    game_start_time: Optional[float] = None
    move_history: Tuple[Move, ...] = ()
    settings: GameSettings = field(default_factory=GameSettings)
    logs: Tuple[str, ...] = ()

    def player(self, player_id: str) -> Player:
        for p in self.players:
            if p.id == player_id:
                return p
        raise KeyError(player_id)

    @property
    def current(self) -> Player:
        return self.player(self.current_player)

    @property
    def has_pending_mismatch(self) -> bool:
        return len(self.flipped_cards) == 2


@dataclass(frozen=True)
class GameSummary:
    duration_seconds: float
    total_moves: int
    accuracy: int  # percent, rounded
    total_pairs: int
    scores: Dict[str, int]
    is_perfect: bool


def _now(now: Optional[float] = None) -> float:
    return time.time() if now is None else now


def _append_log(state: GameState, msg: str) -> GameState:
    return replace(state, logs=state.logs + (msg,))


def _replace_cards(cards: Tuple[Card, ...], updated: Sequence[Card]) -> Tuple[Card, ...]:
    by_pos = {c.position: c for c in updated}
    return tuple(by_pos.get(i, c) for i, c in enumerate(cards))


def _default_settings(mode: GameMode) -> GameSettings:
    return GameSettings(hints_enabled=(mode == "local-multiplayer"))


def _build_players(
    mode: GameMode,
    player1_name: str,
    player2_name: Optional[str],
    ai_difficulty: Optional[AIDifficulty],
    ai2_difficulty: Optional[AIDifficulty],
) -> Tuple[Player, Player]:
    if mode == "ai":
        d1 = ai_difficulty or "medium"
        return (
            Player(id="player1", name=player1_name, type="human"),
            Player(id="ai", name=f"AI ({d1})", type="ai", ai_difficulty=d1),
        )
    if mode == "local-multiplayer":
        return (
            Player(id="player1", name=player1_name, type="human"),
            Player(id="player2", name=player2_name or "Player 2", type="human"),
        )
    if mode == "ai-vs-ai":
        d1 = ai_difficulty or "medium"
        d2 = ai2_difficulty or "medium"
        return (
            Player(id="ai1", name=player1_name, type="ai", ai_difficulty=d1),
            Player(id="ai2", name=f"AI 2 ({d2})", type="ai", ai_difficulty=d2),
        )
    raise ValueError(f"Unknown game mode: {mode}")


def initialize(
    mode: GameMode,
    match_type: MatchType,
    board_size: BoardSize,
    player1_name: str,
    player2_name: Optional[str] = None,
    ai_difficulty: Optional[AIDifficulty] = None,
    ai2_difficulty: Optional[AIDifficulty] = None,
    *,
    settings: Optional[GameSettings] = None,
    rng: Optional[random.Random] = None,
    now: Optional[float] = None,
) -> GameState:
    if match_type not in MATCH_TYPES:
        raise ValueError(f"Unknown match type: {match_type}")
    for d in (ai_difficulty, ai2_difficulty):
        if d is not None and d not in DIFFICULTIES:
            raise ValueError(f"Unknown AI difficulty: {d}")
    players = _build_players(mode, player1_name, player2_name, ai_difficulty, ai2_difficulty)
    cards = generate_cards(board_size, match_type, rng)
    ts = _now(now)
    state = GameState(
        game_mode=mode,
        match_type=match_type,
        board_size=board_size,
        current_player=players[0].id,
        players=players,
        cards=cards,
        game_status="playing",
        turn_start_time=ts,
        game_start_time=ts,
        settings=settings if settings is not None else _default_settings(mode),
    )
    names = " vs ".join(f"{p.name}[{p.id}]" for p in players)
    return _append_log(state, f"NEW_GAME: {mode} {match_type} {board_size}; {names}")


def new_game(cfg: GameConfig, rng: Optional[random.Random] = None) -> GameState:
    return initialize(
        cfg.game_mode,
        cfg.match_type,
        cfg.board_size,
        cfg.player1_name,
        cfg.player2_name,
        cfg.ai_difficulty,
        cfg.ai2_difficulty,
        settings=cfg.settings,
        rng=rng,
    )


def available_indices(state: GameState) -> List[int]:
    return [i for i, c in enumerate(state.cards) if c.is_available]


def next_player_id(state: GameState) -> str:
    ids = [p.id for p in state.players]
    idx = ids.index(state.current_player)
    return ids[(idx + 1) % len(ids)]


def can_flip(state: GameState, index: int) -> bool:
    if state.game_status != "playing":
        return False
    if index < 0 or index >= len(state.cards):
        return False
    if len(state.flipped_cards) >= 2:
        return False
    return state.cards[index].is_available


def flip(state: GameState, index: int, now: Optional[float] = None) -> GameState:
    """
    Turn one card face up. Invalid requests return the input unchanged.
    The second card of a pair is resolved in the same transition.
    """
    if not can_flip(state, index):
        return state
    card = replace(state.cards[index], is_flipped=True)
    nxt = replace(
        state,
        cards=_replace_cards(state.cards, [card]),
        flipped_cards=state.flipped_cards + (card,),
    )
    nxt = _append_log(nxt, f"FLIP: {state.current_player} #{index} {card_label(card)}")
    if len(nxt.flipped_cards) == 2:
        nxt = _resolve_pair(nxt, _now(now))
    return nxt


def _resolve_pair(state: GameState, ts: float) -> GameState:
    a, b = state.flipped_cards
    is_match = cards_match(a, b, state.match_type)
    pid = state.current_player
    move = Move(player_id=pid, card_ids=(a.id, b.id), timestamp=ts, is_match=is_match)
    history = state.move_history + (move,)

    if is_match:
        ma = replace(state.cards[a.position], is_flipped=True, is_matched=True)
        mb = replace(state.cards[b.position], is_flipped=True, is_matched=True)
        pair: CardPair = (ma, mb)
        players = tuple(
            replace(p, score=p.score + 1, matches=p.matches + (pair,)) if p.id == pid else p
            for p in state.players
        )
        nxt = replace(
            state,
            cards=_replace_cards(state.cards, [ma, mb]),
            players=players,
            matched_pairs=state.matched_pairs + (pair,),
            flipped_cards=(),
            move_history=history,
            turn_start_time=ts,
        )
        nxt = _append_log(nxt, f"MATCH: {pid} {card_label(a)} + {card_label(b)}; score={nxt.player(pid).score}")
        if is_finished(nxt):
            nxt = replace(nxt, game_status="finished")
            scores = ", ".join(f"{p.id}={p.score}" for p in nxt.players)
            nxt = _append_log(nxt, f"FINISHED: {scores}")
        return nxt

    # Mismatch: both cards stay face up until reset_mismatch
    if state.game_mode == "ai-vs-ai":
        next_id = pid
    else:
        next_id = next_player_id(state)
    nxt = replace(state, move_history=history, current_player=next_id, turn_start_time=ts)
    nxt = _append_log(nxt, f"MISMATCH: {pid} {card_label(a)} / {card_label(b)}")
    if next_id != pid:
        nxt = _append_log(nxt, f"TURN: {pid} -> {next_id}")
    return nxt


def reset_mismatch(state: GameState, now: Optional[float] = None) -> GameState:
    """Turn the mismatched cards back down; ai-vs-ai also switches seats here."""
    if not state.has_pending_mismatch:
        return state
    cards = tuple(
        replace(c, is_flipped=False) if c.is_flipped and not c.is_matched else c
        for c in state.cards
    )
    nxt = replace(state, cards=cards, flipped_cards=())
    if state.game_mode == "ai-vs-ai":
        prev = state.current_player
        nxt = replace(nxt, current_player=next_player_id(state), turn_start_time=_now(now))
        nxt = _append_log(nxt, f"TURN: {prev} -> {nxt.current_player}")
    return _append_log(nxt, "RESET_MISMATCH")


def apply_move(state: GameState, move: IndexPair, now: Optional[float] = None) -> GameState:
    i, j = move
    return flip(flip(state, i, now), j, now)


def is_finished(state: GameState) -> bool:
    return bool(state.cards) and all(c.is_matched for c in state.cards)


def _top_scorers(state: GameState) -> List[Player]:
    best = max(p.score for p in state.players)
    return [p for p in state.players if p.score == best]


def winner(state: GameState) -> Union[Player, Tuple[Player, ...], None]:
    if not is_finished(state):
        return None
    tops = _top_scorers(state)
    if len(tops) == 1:
        return tops[0]
    return tuple(tops)


def is_draw(state: GameState) -> bool:
    if not is_finished(state):
        return False
    return len(_top_scorers(state)) > 1


def toggle_pause(state: GameState, now: Optional[float] = None) -> GameState:
    if state.game_status == "playing":
        return _append_log(replace(state, game_status="paused"), "PAUSED")
    if state.game_status == "paused":
        return _append_log(replace(state, game_status="playing", turn_start_time=_now(now)), "RESUMED")
    return state


def hint(state: GameState) -> Optional[IndexPair]:
    return find_matching_pair(state.cards, state.match_type)


def game_summary(state: GameState, now: Optional[float] = None) -> GameSummary:
    ts = _now(now)
    duration = ts - state.game_start_time if state.game_start_time is not None else 0.0
    total = len(state.move_history)
    hits = sum(1 for m in state.move_history if m.is_match)
    accuracy = round(hits * 100.0 / total) if total > 0 else 0
    pairs = len(state.cards) // 2
    return GameSummary(
        duration_seconds=max(0.0, duration),
        total_moves=total,
        accuracy=int(accuracy),
        total_pairs=pairs,
        scores={p.id: p.score for p in state.players},
        is_perfect=(total > 0 and hits == total and total == pairs),
    )


def turn_time_remaining(state: GameState, now: Optional[float] = None) -> int:
    limit = state.settings.turn_time_limit
    if not limit or state.turn_start_time is None:
        return 0
    elapsed = _now(now) - state.turn_start_time
    return max(0, int(limit - elapsed))


def validate_state(state: GameState) -> List[str]:
    """Invariant check for tests; an empty list means the state is consistent."""
    errs: List[str] = []
    if len(state.cards) % 2 != 0:
        errs.append("odd number of cards")
    if len(state.flipped_cards) > 2:
        errs.append("more than two flipped cards")
    if len(state.players) != 2:
        errs.append("expected exactly two players")
    ids = [p.id for p in state.players]
    if state.current_player not in ids:
        errs.append(f"current player {state.current_player} not seated")
    for idx, c in enumerate(state.cards):
        if c.position != idx:
            errs.append(f"card {c.id} position {c.position} != index {idx}")
        if c.is_matched and not c.is_flipped:
            errs.append(f"matched card {c.id} is face down")
    seen: Dict[str, int] = {}
    for a, b in state.matched_pairs:
        for c in (a, b):
            seen[c.id] = seen.get(c.id, 0) + 1
    for cid, n in seen.items():
        if n > 1:
            errs.append(f"card {cid} in {n} matched pairs")
    matched_ids = {c.id for c in state.cards if c.is_matched}
    if matched_ids != set(seen):
        errs.append("matched cards and matched pairs disagree")
    score_sum = sum(p.score for p in state.players)
    if score_sum != len(state.matched_pairs):
        errs.append(f"score sum {score_sum} != matched pairs {len(state.matched_pairs)}")
    if (state.game_status == "finished") != is_finished(state):
        errs.append("finished status disagrees with board")
    return errs


# --- JSON serialization (pure, no I/O) ---

def _card_to_obj(card: Card) -> Dict[str, object]:
    return {
        "id": card.id,
        "suit": card.suit,
        "rank": card.rank,
        "color": card.color,
        "position": int(card.position),
        "isFlipped": bool(card.is_flipped),
        "isMatched": bool(card.is_matched),
    }


def _obj_to_card(obj: object) -> Card:
    assert isinstance(obj, dict), "Invalid card"
    cid = obj.get("id")
    suit = obj.get("suit")
    rank = obj.get("rank")
    pos = obj.get("position")
    assert isinstance(cid, str) and cid, "Invalid card id"
    assert suit in SUITS, f"Unknown suit: {suit}"
    assert rank in RANKS, f"Unknown rank: {rank}"
    assert isinstance(pos, int), "Invalid card position"
    color = SUIT_COLOR[cast(str, suit)]
    assert obj.get("color", color) == color, f"Color does not match suit for {cid}"
    return Card(
        id=cid,
        suit=cast(Any, suit),
        rank=cast(Any, rank),
        color=color,
        position=pos,
        is_flipped=bool(obj.get("isFlipped", False)),
        is_matched=bool(obj.get("isMatched", False)),
    )


def _settings_to_obj(s: GameSettings) -> Dict[str, object]:
    return {
        "soundEnabled": s.sound_enabled,
        "animationSpeed": s.animation_speed,
        "theme": s.theme,
        "showTimer": s.show_timer,
        "hintsEnabled": s.hints_enabled,
        "cardTheme": s.card_theme,
        "turnTimeLimit": s.turn_time_limit,
    }


def _obj_to_settings(obj: object) -> GameSettings:
    if not isinstance(obj, dict):
        return GameSettings()
    ttl = obj.get("turnTimeLimit")
    return GameSettings(
        sound_enabled=bool(obj.get("soundEnabled", True)),
        animation_speed=cast(Any, obj.get("animationSpeed", "normal")),
        theme=str(obj.get("theme", "dark")),
        show_timer=bool(obj.get("showTimer", True)),
        hints_enabled=bool(obj.get("hintsEnabled", False)),
        card_theme=cast(Any, obj.get("cardTheme", "classic")),
        turn_time_limit=None if ttl is None else int(ttl),
    )


def to_json(state: GameState) -> Dict[str, object]:
    players_obj: List[Dict[str, object]] = []
    for p in state.players:
        players_obj.append({
            "id": p.id,
            "name": p.name,
            "type": p.type,
            "score": int(p.score),
            "matches": [[a.id, b.id] for a, b in p.matches],
            "aiDifficulty": p.ai_difficulty,
        })
    moves_obj: List[Dict[str, object]] = [
        {
            "playerId": m.player_id,
            "cardIds": list(m.card_ids),
            "timestamp": float(m.timestamp),
            "isMatch": bool(m.is_match),
        }
        for m in state.move_history
    ]
    data: Dict[str, object] = {
        "schemaVersion": SCHEMA_VERSION,
        "gameMode": state.game_mode,
        "matchType": state.match_type,
        "boardSize": state.board_size,
        "currentPlayerId": state.current_player,
        "players": players_obj,
        "cards": [_card_to_obj(c) for c in state.cards],
        "flippedCardIds": [c.id for c in state.flipped_cards],
        "matchedPairs": [[a.id, b.id] for a, b in state.matched_pairs],
        "gameStatus": state.game_status,
        "turnStartTime": state.turn_start_time,
        "gameStartTime": state.game_start_time,
        "moveHistory": moves_obj,
        "settings": _settings_to_obj(state.settings),
        "logs": list(state.logs),
    }
    return data


def _pair_from_ids(obj: object, by_id: Dict[str, Card]) -> CardPair:
    assert isinstance(obj, list) and len(obj) == 2, "Pair must list two card ids"
    a, b = obj
    assert a in by_id and b in by_id, f"Unknown card in pair: {obj}"
    return (by_id[a], by_id[b])


def from_json(data: Dict[str, object]) -> GameState:
    assert isinstance(data, dict), "Data must be a dict"
    assert data.get("schemaVersion") == SCHEMA_VERSION, "Unsupported schemaVersion"

    mode = data.get("gameMode")
    match_type = data.get("matchType")
    board_size = data.get("boardSize")
    assert mode in GAME_MODES, f"Unknown game mode: {mode}"
    assert match_type in MATCH_TYPES, f"Unknown match type: {match_type}"
    assert board_size in BOARD_DIMENSIONS, f"Unsupported board size: {board_size}"

    cards_raw = data.get("cards")
    assert isinstance(cards_raw, list), "cards list required"
    cards = tuple(_obj_to_card(c) for c in cards_raw)
    assert len(cards) == BOARD_DIMENSIONS[cast(str, board_size)][2], "Card count does not fit board size"
    by_id = {c.id: c for c in cards}
    assert len(by_id) == len(cards), "Duplicate card ids"

    p_list = data.get("players")
    assert isinstance(p_list, list) and len(p_list) == 2, "Exactly two players required"
    players: List[Player] = []
    for pobj in p_list:
        assert isinstance(pobj, dict)
        pid = pobj.get("id")
        name = pobj.get("name")
        ptype = pobj.get("type")
        diff = pobj.get("aiDifficulty")
        assert isinstance(pid, str) and pid, "Invalid player id"
        assert isinstance(name, str), "Invalid player name"
        assert ptype in ("human", "ai"), "Invalid player type"
        assert diff is None or diff in DIFFICULTIES, f"Unknown AI difficulty: {diff}"
        matches_raw = pobj.get("matches", [])
        assert isinstance(matches_raw, list)
        players.append(Player(
            id=pid,
            name=name,
            type=cast(Any, ptype),
            score=int(cast(int, pobj.get("score", 0))),
            matches=tuple(_pair_from_ids(m, by_id) for m in matches_raw),
            ai_difficulty=cast(Any, diff),
        ))

    cpid = data.get("currentPlayerId")
    assert cpid in [p.id for p in players], "currentPlayerId not found in players"

    flipped_raw = data.get("flippedCardIds", [])
    assert isinstance(flipped_raw, list) and len(flipped_raw) <= 2, "Invalid flippedCardIds"
    flipped = tuple(by_id[cast(str, cid)] for cid in flipped_raw)

    pairs_raw = data.get("matchedPairs", [])
    assert isinstance(pairs_raw, list)
    matched = tuple(_pair_from_ids(m, by_id) for m in pairs_raw)

    moves_raw = data.get("moveHistory", [])
    assert isinstance(moves_raw, list)
    moves: List[Move] = []
    for m in moves_raw:
        assert isinstance(m, dict)
        ids = m.get("cardIds")
        assert isinstance(ids, list) and len(ids) == 2, "Move must list two card ids"
        moves.append(Move(
            player_id=str(m.get("playerId")),
            card_ids=(str(ids[0]), str(ids[1])),
            timestamp=float(cast(float, m.get("timestamp", 0.0))),
            is_match=bool(m.get("isMatch", False)),
        ))

    status = data.get("gameStatus", "playing")
    assert status in ("setup", "playing", "paused", "finished"), f"Unknown game status: {status}"
    logs_obj = data.get("logs", [])
    assert isinstance(logs_obj, list)

    tst = data.get("turnStartTime")
    gst = data.get("gameStartTime")
    return GameState(
        game_mode=cast(Any, mode),
        match_type=cast(Any, match_type),
        board_size=cast(Any, board_size),
        current_player=cast(str, cpid),
        players=tuple(players),
        cards=cards,
        flipped_cards=flipped,
        matched_pairs=matched,
        game_status=cast(Any, status),
        turn_start_time=None if tst is None else float(cast(float, tst)),
        game_start_time=None if gst is None else float(cast(float, gst)),
        move_history=tuple(moves),
        settings=_obj_to_settings(data.get("settings")),
        logs=tuple(str(x) for x in logs_obj),
    )
