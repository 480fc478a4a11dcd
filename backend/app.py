from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional
import random
import uuid

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from backend.models import (
    NewGameReq,
    SessionReq,
    FlipReq,
    LoadReq,
    GetStateResp,
    StateEnvelope,
    FlipResp,
    StepResp,
    HintResp,
)

from memory_engine.ai import AIPlayer
from memory_engine.core import (
    GameConfig,
    GameSettings,
    GameState,
    apply_move,
    can_flip,
    flip,
    from_json,
    hint,
    new_game,
    reset_mismatch,
    to_json,
    toggle_pause,
)


@dataclass
class Session:
    state: GameState
    ai_players: Dict[str, AIPlayer] = field(default_factory=dict)

    def observe(self) -> None:
        st = self.state
        for ai in self.ai_players.values():
            ai.observe(st.cards, st.match_type, st.move_history)


# In-memory session store
SESSIONS: Dict[str, Session] = {}


def _new_session_id() -> str:
    return uuid.uuid4().hex


def get_session(session_id: str) -> Session:
    session = SESSIONS.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _open_session(state: GameState, seed: Optional[int]) -> str:
    rng = random.Random(seed)
    ai_players: Dict[str, AIPlayer] = {}
    for p in state.players:
        if p.is_ai:
            # The browser paces the AI itself; no reaction sleep here
            ai_players[p.id] = AIPlayer(
                p.ai_difficulty or "medium",
                seat_id=p.id,
                rng=random.Random(rng.random()),
                delay_scale=0.0,
            )
    session = Session(state=state, ai_players=ai_players)
    session.observe()
    sid = _new_session_id()
    SESSIONS[sid] = session
    return sid


app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health() -> Dict[str, bool]:
    return {"ok": True}


@app.post("/new-game", response_model=StateEnvelope)
def new_game_endpoint(req: NewGameReq) -> StateEnvelope:
    try:
        hints = req.hintsEnabled if req.hintsEnabled is not None else req.gameMode == "local-multiplayer"
        cfg = GameConfig(
            game_mode=req.gameMode,
            match_type=req.matchType,
            board_size=req.boardSize,
            player1_name=req.player1Name,
            player2_name=req.player2Name,
            ai_difficulty=req.aiDifficulty,
            ai2_difficulty=req.ai2Difficulty,
            settings=GameSettings(hints_enabled=hints, turn_time_limit=req.turnTimeLimit),
        )
        state = new_game(cfg, random.Random(req.seed))
        sid = _open_session(state, req.seed)
        return StateEnvelope(sessionId=sid, state=to_json(state))
    except HTTPException:
        raise
    except (AssertionError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"new-game failed: {e}")


@app.get("/state/{sessionId}", response_model=GetStateResp)
def get_state_endpoint(sessionId: str) -> GetStateResp:
    session = get_session(sessionId)
    return GetStateResp(state=to_json(session.state))


@app.post("/flip", response_model=FlipResp)
def flip_endpoint(req: FlipReq) -> FlipResp:
    try:
        session = get_session(req.sessionId)
        state = session.state
        if state.current.is_ai:
            raise HTTPException(status_code=400, detail="Not a human turn")
        # Illegal flips leave the state untouched
        accepted = can_flip(state, req.index)
        if accepted:
            session.state = flip(state, req.index)
            session.observe()
        return FlipResp(accepted=accepted, state=to_json(session.state))
    except HTTPException:
        raise
    except (AssertionError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"flip failed: {e}")


@app.post("/reset-mismatch", response_model=GetStateResp)
def reset_mismatch_endpoint(req: SessionReq) -> GetStateResp:
    try:
        session = get_session(req.sessionId)
        session.state = reset_mismatch(session.state)
        session.observe()
        return GetStateResp(state=to_json(session.state))
    except HTTPException:
        raise
    except (AssertionError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"reset-mismatch failed: {e}")


@app.post("/step", response_model=StepResp)
def step_endpoint(req: SessionReq) -> StepResp:
    """Play the current AI seat's two flips; the caller resets a mismatch afterwards."""
    try:
        session = get_session(req.sessionId)
        state = session.state
        if state.game_status != "playing" or state.has_pending_mismatch:
            return StepResp(state=to_json(state))
        ai = session.ai_players.get(state.current_player)
        if ai is None:
            raise HTTPException(status_code=400, detail="Not an AI turn")
        move = ai.choose_move(state.cards, state.match_type, state.move_history)
        if move is None:
            return StepResp(state=to_json(state))
        session.state = apply_move(state, move)
        session.observe()
        strategy = ai.explain.strategy if ai.explain is not None else None
        return StepResp(move=list(move), strategy=strategy, state=to_json(session.state))
    except HTTPException:
        raise
    except (AssertionError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"step failed: {e}")


@app.post("/pause", response_model=GetStateResp)
def pause_endpoint(req: SessionReq) -> GetStateResp:
    session = get_session(req.sessionId)
    session.state = toggle_pause(session.state)
    return GetStateResp(state=to_json(session.state))


@app.get("/hint/{sessionId}", response_model=HintResp)
def hint_endpoint(sessionId: str) -> HintResp:
    session = get_session(sessionId)
    if not session.state.settings.hints_enabled:
        raise HTTPException(status_code=403, detail="Hints are disabled for this game")
    pair = hint(session.state)
    return HintResp(pair=list(pair) if pair is not None else None)


@app.post("/load", response_model=StateEnvelope)
def load_endpoint(req: LoadReq) -> StateEnvelope:
    try:
        state = from_json(req.snapshot)
        sid = _open_session(state, req.seed)
        return StateEnvelope(sessionId=sid, state=to_json(state))
    except HTTPException:
        raise
    except (AssertionError, ValueError, KeyError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"load failed: {e}")


@app.delete("/session/{sessionId}")
def delete_session(sessionId: str) -> Dict[str, bool]:
    get_session(sessionId)
    del SESSIONS[sessionId]
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.app:app", host="0.0.0.0", port=8000, reload=True)
