from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# Domain primitives for JSON bridge
GameMode = Literal["ai", "local-multiplayer", "ai-vs-ai"]
MatchType = Literal["color", "rank", "suit"]
BoardSize = Literal["4x4", "4x6", "6x6"]
Difficulty = Literal["easy", "medium", "hard", "expert"]


class NewGameReq(BaseModel):
    gameMode: GameMode
    matchType: MatchType
    boardSize: BoardSize = "4x4"
    player1Name: str = Field("Player 1", min_length=1)
    player2Name: Optional[str] = None
    aiDifficulty: Optional[Difficulty] = None
    ai2Difficulty: Optional[Difficulty] = None
    hintsEnabled: Optional[bool] = None
    turnTimeLimit: Optional[int] = Field(None, ge=1)
    seed: Optional[int] = None


class SessionReq(BaseModel):
    sessionId: str


class FlipReq(BaseModel):
    sessionId: str
    index: int = Field(..., ge=0, le=35)


class LoadReq(BaseModel):
    snapshot: Dict[str, Any]
    seed: Optional[int] = None


class GetStateResp(BaseModel):
    state: Dict[str, Any]


class StateEnvelope(BaseModel):
    sessionId: str
    state: Dict[str, Any]


class FlipResp(BaseModel):
    accepted: bool
    state: Dict[str, Any]


class StepResp(BaseModel):
    move: Optional[List[int]] = None
    strategy: Optional[str] = None
    state: Dict[str, Any]


class HintResp(BaseModel):
    pair: Optional[List[int]] = None
