from __future__ import annotations

from contextlib import suppress
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Protocol
import asyncio
import logging
import random

from .ai import AIPlayer, is_legal_move
from .core import (
    GameConfig,
    GameState,
    can_flip,
    flip,
    from_json,
    game_summary,
    hint,
    is_draw,
    is_finished,
    new_game,
    reset_mismatch,
    to_json,
    toggle_pause,
    winner,
)
from .events import EventBus, EventType
from .types import IndexPair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrchestratorTimings:
    """Delays in seconds between the steps of a turn."""
    flip_stagger: float = 0.3
    mismatch_display: float = 1.5
    match_continuation: float = 1.0
    ai_turn_lead_in: float = 1.0
    watchdog: float = 5.0
    ai_delay_scale: float = 1.0
    max_stalled_turns: int = 3

    @classmethod
    def instant(cls, watchdog: float = 5.0) -> "OrchestratorTimings":
        return cls(
            flip_stagger=0.0,
            mismatch_display=0.0,
            match_continuation=0.0,
            ai_turn_lead_in=0.0,
            watchdog=watchdog,
            ai_delay_scale=0.0,
        )


class Persistence(Protocol):
    def save(self, snapshot: Dict[str, object]) -> None: ...

    def clear(self) -> None: ...


class InMemoryPersistence:
    def __init__(self) -> None:
        self.snapshot: Optional[Dict[str, object]] = None
        self.saves = 0

    def save(self, snapshot: Dict[str, object]) -> None:
        self.snapshot = snapshot
        self.saves += 1

    def clear(self) -> None:
        self.snapshot = None

    def load(self) -> Optional[GameState]:
        if self.snapshot is None:
            return None
        return from_json(self.snapshot)


class TurnOrchestrator:
    """
    Drives one game: human input, AI turns, display delays and the single
    game-finished signal. All methods run on one asyncio event loop; the
    GameState is only ever replaced here.
    """

    def __init__(
        self,
        cfg: GameConfig,
        *,
        timings: Optional[OrchestratorTimings] = None,
        bus: Optional[EventBus] = None,
        persistence: Optional[Persistence] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.cfg = cfg
        self.timings = timings if timings is not None else OrchestratorTimings()
        self.bus = bus if bus is not None else EventBus()
        self.persistence = persistence
        self.rng = rng if rng is not None else random.Random()
        self.state: Optional[GameState] = None
        self.ai_players: Dict[str, AIPlayer] = {}
        self._in_flight: Dict[str, bool] = {}
        self._busy = False
        self._turn_active = False
        self._generation = 0
        self._ai_task: Optional[asyncio.Task[None]] = None
        self._finished_emitted = False

    # --- lifecycle ---

    async def start(self) -> GameState:
        await self._cancel_pending()
        state = new_game(self.cfg, self.rng)
        self._install(state)
        self.bus.emit_simple(
            EventType.GAME_STARTED,
            {"gameMode": state.game_mode, "players": [p.id for p in state.players]},
            source="TurnOrchestrator",
        )
        self._kick()
        return state

    async def new_game(self) -> GameState:
        """Restart with the same configuration and fresh AI memories."""
        return await self.start()

    async def load(self, snapshot: Dict[str, object]) -> GameState:
        await self._cancel_pending()
        state = from_json(snapshot)
        if state.has_pending_mismatch:
            state = reset_mismatch(state)
        self._install(state)
        self._kick()
        return state

    async def end(self) -> None:
        """Leave the game: pending AI turns and timers are cancelled."""
        await self._cancel_pending()
        self.state = None
        self.ai_players = {}
        self._in_flight = {}
        if self.persistence is not None:
            self.persistence.clear()

    async def wait_until_idle(self) -> None:
        while self._ai_task is not None and not self._ai_task.done():
            with suppress(asyncio.CancelledError):
                await self._ai_task

    def _install(self, state: GameState) -> None:
        self._finished_emitted = False
        self._busy = False
        self._turn_active = False
        self.ai_players = {}
        self._in_flight = {}
        for p in state.players:
            if p.is_ai:
                diff = p.ai_difficulty or "medium"
                self.ai_players[p.id] = AIPlayer(
                    diff,
                    seat_id=p.id,
                    rng=random.Random(self.rng.random()),
                    delay_scale=self.timings.ai_delay_scale,
                )
                self._in_flight[p.id] = False
        self._set_state(state)
        self._check_finished()

    async def _cancel_pending(self) -> None:
        self._generation += 1
        task = self._ai_task
        self._ai_task = None
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self._busy = False
        self._turn_active = False

    def _is_current(self, gen: int) -> bool:
        return gen == self._generation and self.state is not None

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds if seconds > 0 else 0)

    # --- state changes and events ---

    def _set_state(self, state: GameState) -> None:
        self.state = state
        self.bus.emit_simple(EventType.STATE_CHANGED, {"state": state}, source="TurnOrchestrator")
        if self.persistence is not None:
            self.persistence.save(to_json(state))

    def _observe_all(self) -> None:
        st = self.state
        if st is None:
            return
        for ai in self.ai_players.values():
            ai.observe(st.cards, st.match_type, st.move_history)

    def _apply_flip(self, index: int) -> bool:
        prev = self.state
        if prev is None:
            return False
        nxt = flip(prev, index)
        if nxt is prev:
            return False
        self._set_state(nxt)
        card = nxt.cards[index]
        self.bus.emit_simple(
            EventType.CARD_FLIPPED,
            {"cardId": card.id, "position": index, "playerId": prev.current_player},
            source="TurnOrchestrator",
        )
        if len(nxt.move_history) > len(prev.move_history):
            move = nxt.move_history[-1]
            scores = {p.id: p.score for p in nxt.players}
            if move.is_match:
                self.bus.emit_simple(
                    EventType.PAIR_MATCHED,
                    {"cardIds": list(move.card_ids), "playerId": move.player_id, "scores": scores},
                    source="TurnOrchestrator",
                )
            else:
                self.bus.emit_simple(
                    EventType.PAIR_MISMATCHED,
                    {"cardIds": list(move.card_ids), "playerId": move.player_id, "scores": scores},
                    source="TurnOrchestrator",
                )
            self._emit_turn_change(prev, nxt)
        self._observe_all()
        return True

    def _apply_reset(self) -> None:
        prev = self.state
        if prev is None or not prev.has_pending_mismatch:
            return
        nxt = reset_mismatch(prev)
        self._set_state(nxt)
        self._emit_turn_change(prev, nxt)
        self._observe_all()

    def _emit_turn_change(self, prev: GameState, nxt: GameState) -> None:
        if prev.current_player != nxt.current_player:
            self.bus.emit_simple(
                EventType.TURN_CHANGED,
                {"from": prev.current_player, "to": nxt.current_player},
                source="TurnOrchestrator",
            )

    def _check_finished(self, reason: str = "all_matched") -> bool:
        st = self.state
        if st is None or self._finished_emitted:
            return self._finished_emitted
        if reason == "all_matched" and not is_finished(st):
            return False
        self._finished_emitted = True
        w = winner(st)
        if w is None:
            winners: List[str] = []
        elif isinstance(w, tuple):
            winners = [p.id for p in w]
        else:
            winners = [w.id]
        self.bus.emit_simple(
            EventType.GAME_FINISHED,
            {
                "reason": reason,
                "winners": winners,
                "isDraw": is_draw(st),
                "scores": {p.id: p.score for p in st.players},
                "summary": asdict(game_summary(st)),
            },
            source="TurnOrchestrator",
        )
        logger.info("Game finished (%s): winners=%s", reason, winners)
        return True

    # --- human input ---

    def ready_for_human(self) -> bool:
        st = self.state
        if st is None or self._busy or self._turn_active:
            return False
        if any(self._in_flight.values()):
            return False
        return not st.current.is_ai

    async def human_flip(self, index: int) -> bool:
        """
        Flip a card for the human whose turn it is. Returns False when the
        request is rejected (AI turn, pending delay, illegal card).
        """
        st = self.state
        if st is None or not self.ready_for_human() or not can_flip(st, index):
            return False
        gen = self._generation
        self._apply_flip(index)
        after = self.state
        if after is not None and after.has_pending_mismatch:
            self._busy = True
            try:
                await self._sleep(self.timings.mismatch_display)
            finally:
                if self._is_current(gen):
                    self._busy = False
            if not self._is_current(gen):
                return True
            self._apply_reset()
        self._check_finished()
        self._kick()
        return True

    async def toggle_pause(self) -> bool:
        st = self.state
        if st is None or self._busy or self._turn_active:
            return False
        nxt = toggle_pause(st)
        if nxt is st:
            return False
        self._set_state(nxt)
        kind = EventType.GAME_PAUSED if nxt.game_status == "paused" else EventType.GAME_RESUMED
        self.bus.emit_simple(kind, {"status": nxt.game_status}, source="TurnOrchestrator")
        if nxt.game_status == "playing":
            self._kick()
        return True

    def hint(self) -> Optional[IndexPair]:
        if self.state is None:
            return None
        return hint(self.state)

    # --- AI turns ---

    def _kick(self) -> None:
        st = self.state
        if st is None or st.game_status != "playing" or is_finished(st):
            return
        if not st.current.is_ai or st.has_pending_mismatch:
            return
        if self._ai_task is not None and not self._ai_task.done():
            return
        self._ai_task = asyncio.create_task(self._ai_loop(self._generation))

    async def _ai_loop(self, gen: int) -> None:
        stalls = 0
        while self._is_current(gen):
            st = self.state
            assert st is not None
            if is_finished(st):
                self._check_finished()
                return
            if st.game_status != "playing" or not st.current.is_ai or st.has_pending_mismatch:
                return
            await self._sleep(self.timings.ai_turn_lead_in)
            if not self._is_current(gen):
                return
            # The board may have been paused during the lead-in
            st = self.state
            assert st is not None
            if st.game_status != "playing" or not st.current.is_ai or st.has_pending_mismatch:
                return
            outcome = await self._run_ai_turn(st.current_player, gen)
            if outcome in ("match", "mismatch", "finished"):
                stalls = 0
                continue
            if outcome in ("cancelled", "paused"):
                return
            # timeout, no_move, rejected, busy: re-evaluate instead of waiting forever
            st = self.state
            if st is not None and is_finished(st):
                self._check_finished()
                return
            stalls += 1
            logger.warning("AI turn for %s ended with %s (%d/%d)", st.current_player if st else "?", outcome, stalls, self.timings.max_stalled_turns)
            if stalls >= self.timings.max_stalled_turns:
                logger.error("AI could not move on an unfinished board; ending game")
                self._check_finished(reason="ai_stalled")
                return

    async def _run_ai_turn(self, seat_id: str, gen: int) -> str:
        if any(self._in_flight.values()):
            return "busy"
        ai = self.ai_players.get(seat_id)
        st = self.state
        if ai is None or st is None:
            return "rejected"
        self._turn_active = True
        try:
            self._in_flight[seat_id] = True
            try:
                move = await asyncio.wait_for(
                    ai.decide(st.cards, st.match_type, st.move_history),
                    timeout=self.timings.watchdog,
                )
            except asyncio.TimeoutError:
                logger.warning("AI %s watchdog expired after %.1fs", seat_id, self.timings.watchdog)
                return "timeout"
            finally:
                self._in_flight[seat_id] = False
            if not self._is_current(gen):
                return "cancelled"
            return await self._play_ai_move(seat_id, move, gen)
        finally:
            if self._is_current(gen):
                self._turn_active = False

    async def _play_ai_move(self, seat_id: str, move: Optional[IndexPair], gen: int) -> str:
        st = self.state
        assert st is not None
        if move is None:
            return "no_move"
        if st.game_status != "playing":
            return "paused"
        if st.current_player != seat_id or not is_legal_move(st.cards, move):
            logger.warning("Discarding AI move %s for %s: board changed", move, seat_id)
            return "rejected"
        first, second = move
        self._apply_flip(first)
        await self._sleep(self.timings.flip_stagger)
        if not self._is_current(gen):
            return "cancelled"
        if not self._apply_flip(second):
            return "rejected"
        after = self.state
        assert after is not None
        if is_finished(after):
            self._check_finished()
            return "finished"
        self._busy = True
        try:
            if after.move_history[-1].is_match:
                await self._sleep(self.timings.match_continuation)
                return "match" if self._is_current(gen) else "cancelled"
            await self._sleep(self.timings.mismatch_display)
            if not self._is_current(gen):
                return "cancelled"
            self._apply_reset()
            return "mismatch"
        finally:
            if self._is_current(gen):
                self._busy = False
