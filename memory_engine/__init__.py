from .types import Card, Player, Move, IndexPair, SUITS, RANKS, SUIT_COLOR
from .deck import BOARD_DIMENSIONS, board_dimensions, generate_cards, generate_pairs, shuffle
from .matching import cards_match, find_matching_pair
from .ai import (
    AIExplain,
    AIMemory,
    AIPlayer,
    DIFFICULTY_PROFILES,
    create_ai_player,
    difficulty_info,
    evaluate_move,
)
from .core import (
    GameConfig,
    GameSettings,
    GameState,
    GameSummary,
    initialize,
    new_game,
    can_flip,
    flip,
    reset_mismatch,
    apply_move,
    is_finished,
    winner,
    is_draw,
    toggle_pause,
    hint,
    game_summary,
    validate_state,
    to_json,
    from_json,
)
from .events import Event, EventBus, EventType
from .orchestrator import InMemoryPersistence, OrchestratorTimings, TurnOrchestrator

__all__ = [
    "Card",
    "Player",
    "Move",
    "IndexPair",
    "SUITS",
    "RANKS",
    "SUIT_COLOR",
    "BOARD_DIMENSIONS",
    "board_dimensions",
    "generate_cards",
    "generate_pairs",
    "shuffle",
    "cards_match",
    "find_matching_pair",
    "AIExplain",
    "AIMemory",
    "AIPlayer",
    "DIFFICULTY_PROFILES",
    "create_ai_player",
    "difficulty_info",
    "evaluate_move",
    "GameConfig",
    "GameSettings",
    "GameState",
    "GameSummary",
    "initialize",
    "new_game",
    "can_flip",
    "flip",
    "reset_mismatch",
    "apply_move",
    "is_finished",
    "winner",
    "is_draw",
    "toggle_pause",
    "hint",
    "game_summary",
    "validate_state",
    "to_json",
    "from_json",
    "Event",
    "EventBus",
    "EventType",
    "InMemoryPersistence",
    "OrchestratorTimings",
    "TurnOrchestrator",
]
