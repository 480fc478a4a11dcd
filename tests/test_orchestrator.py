import asyncio
import random
from dataclasses import replace

from memory_engine.core import GameConfig, hint, is_finished, to_json, validate_state
from memory_engine.events import EventBus, EventRecorder, EventType
from memory_engine.matching import cards_match
from memory_engine.orchestrator import InMemoryPersistence, OrchestratorTimings, TurnOrchestrator


def _orch(cfg: GameConfig, timings=None, seed: int = 3):
    bus = EventBus()
    rec = EventRecorder(bus)
    store = InMemoryPersistence()
    orch = TurnOrchestrator(
        cfg,
        timings=timings if timings is not None else OrchestratorTimings.instant(),
        bus=bus,
        persistence=store,
        rng=random.Random(seed),
    )
    return orch, rec, store


def _mismatch(state):
    n = len(state.cards)
    for i in range(n):
        for j in range(i + 1, n):
            a, b = state.cards[i], state.cards[j]
            if a.is_available and b.is_available and not cards_match(a, b, state.match_type):
                return i, j
    raise AssertionError("board has no mismatching pair")


def test_ai_vs_ai_runs_to_completion():
    cfg = GameConfig("ai-vs-ai", "color", "4x4", player1_name="AI 1 (hard)", ai_difficulty="hard", ai2_difficulty="easy")

    async def run():
        orch, rec, store = _orch(cfg)
        await orch.start()
        await asyncio.wait_for(orch.wait_until_idle(), timeout=10)
        return orch, rec, store

    orch, rec, store = asyncio.run(run())
    st = orch.state
    assert st is not None
    assert is_finished(st) and st.game_status == "finished"
    assert validate_state(st) == []
    finished = rec.of_type(EventType.GAME_FINISHED)
    assert len(finished) == 1
    assert finished[0].data["reason"] == "all_matched"
    assert sum(finished[0].data["scores"].values()) == 8
    assert len(rec.of_type(EventType.CARD_FLIPPED)) == 2 * len(st.move_history)
    assert len(rec.of_type(EventType.PAIR_MATCHED)) == 8
    assert len(rec.of_type(EventType.GAME_STARTED)) == 1
    assert store.snapshot == to_json(st)
    loaded = store.load()
    assert loaded is not None and to_json(loaded) == to_json(st)


def test_turn_changes_only_after_mismatch_in_ai_vs_ai():
    cfg = GameConfig("ai-vs-ai", "suit", "4x4", player1_name="AI 1", ai_difficulty="medium", ai2_difficulty="medium")

    async def run():
        orch, rec, _store = _orch(cfg, seed=9)
        await orch.start()
        await asyncio.wait_for(orch.wait_until_idle(), timeout=10)
        return rec

    rec = asyncio.run(run())
    kinds = [e.event_type for e in rec.events if e.event_type in (EventType.PAIR_MISMATCHED, EventType.TURN_CHANGED, EventType.PAIR_MATCHED)]
    for k, kind in enumerate(kinds):
        if kind == EventType.TURN_CHANGED:
            assert k > 0 and kinds[k - 1] == EventType.PAIR_MISMATCHED


def test_human_turn_hands_over_to_ai():
    cfg = GameConfig("ai", "color", "4x4", player1_name="You", ai_difficulty="expert")

    async def run():
        orch, rec, _store = _orch(cfg)
        st = await orch.start()
        assert orch.ready_for_human()
        i, j = _mismatch(st)
        assert await orch.human_flip(i)
        assert await orch.human_flip(j)
        # AI has the turn now; human input bounces
        assert orch.state is not None and orch.state.current_player == "ai"
        assert not orch.ready_for_human()
        k = next(c.position for c in orch.state.cards if c.is_available)
        assert not await orch.human_flip(k)
        await asyncio.wait_for(orch.wait_until_idle(), timeout=10)
        return orch, rec

    orch, rec = asyncio.run(run())
    st = orch.state
    assert st is not None
    assert st.current_player == "player1" or is_finished(st)
    assert st.flipped_cards == ()
    assert any(m.player_id == "ai" for m in st.move_history)
    assert validate_state(st) == []
    turns = rec.of_type(EventType.TURN_CHANGED)
    assert turns[0].data == {"from": "player1", "to": "ai"}


def test_human_flip_rejects_illegal_cards():
    cfg = GameConfig("local-multiplayer", "rank", "4x4", player2_name="Bea")

    async def run():
        orch, rec, _store = _orch(cfg)
        await orch.start()
        assert not await orch.human_flip(99)
        assert await orch.human_flip(0)
        assert not await orch.human_flip(0)
        return rec

    rec = asyncio.run(run())
    assert len(rec.of_type(EventType.CARD_FLIPPED)) == 1


def test_pause_and_resume():
    cfg = GameConfig("local-multiplayer", "color", "4x4")

    async def run():
        orch, rec, _store = _orch(cfg)
        await orch.start()
        assert await orch.toggle_pause()
        assert orch.state is not None and orch.state.game_status == "paused"
        assert not await orch.human_flip(0)
        assert await orch.toggle_pause()
        assert await orch.human_flip(0)
        return rec

    rec = asyncio.run(run())
    assert len(rec.of_type(EventType.GAME_PAUSED)) == 1
    assert len(rec.of_type(EventType.GAME_RESUMED)) == 1


def test_end_cancels_pending_ai_turn():
    cfg = GameConfig("ai-vs-ai", "color", "4x4", ai_difficulty="easy", ai2_difficulty="easy")
    slow = replace(OrchestratorTimings.instant(), ai_turn_lead_in=30.0)

    async def run():
        orch, rec, store = _orch(cfg, timings=slow)
        await orch.start()
        await asyncio.sleep(0)
        await asyncio.wait_for(orch.end(), timeout=1)
        await asyncio.sleep(0)
        return orch, rec, store

    orch, rec, store = asyncio.run(run())
    assert orch.state is None
    assert store.snapshot is None
    assert rec.of_type(EventType.CARD_FLIPPED) == []
    assert rec.of_type(EventType.GAME_FINISHED) == []


def test_watchdog_gives_up_gracefully():
    cfg = GameConfig("ai-vs-ai", "color", "4x4", ai_difficulty="easy", ai2_difficulty="easy")
    # Easy reaction time is at least a second; the watchdog fires first
    timings = replace(OrchestratorTimings.instant(watchdog=0.01), ai_delay_scale=1.0, max_stalled_turns=2)

    async def run():
        orch, rec, _store = _orch(cfg, timings=timings)
        await orch.start()
        await asyncio.wait_for(orch.wait_until_idle(), timeout=5)
        return orch, rec

    orch, rec = asyncio.run(run())
    st = orch.state
    assert st is not None and not is_finished(st)
    assert not any(orch._in_flight.values())
    finished = rec.of_type(EventType.GAME_FINISHED)
    assert len(finished) == 1
    assert finished[0].data["reason"] == "ai_stalled"


def test_new_game_resets_finish_signal():
    cfg = GameConfig("ai-vs-ai", "rank", "4x4", ai_difficulty="expert", ai2_difficulty="hard")

    async def run():
        orch, rec, _store = _orch(cfg)
        await orch.start()
        await asyncio.wait_for(orch.wait_until_idle(), timeout=10)
        first = orch.state
        await orch.new_game()
        await asyncio.wait_for(orch.wait_until_idle(), timeout=10)
        return orch, rec, first

    orch, rec, first = asyncio.run(run())
    assert first is not None and orch.state is not None
    assert orch.state is not first
    assert is_finished(orch.state)
    assert len(rec.of_type(EventType.GAME_FINISHED)) == 2
    assert len(rec.of_type(EventType.GAME_STARTED)) == 2


def test_load_snapshot_and_hint():
    cfg = GameConfig("local-multiplayer", "suit", "4x4")

    async def run():
        orch, _rec, store = _orch(cfg)
        st = await orch.start()
        pair = orch.hint()
        assert pair == hint(st)
        assert pair is not None
        await orch.human_flip(pair[0])
        await orch.human_flip(pair[1])
        snap = store.snapshot
        assert snap is not None
        other, _rec2, _store2 = _orch(cfg, seed=99)
        restored = await other.load(snap)
        return orch, restored

    orch, restored = asyncio.run(run())
    assert orch.state is not None
    assert to_json(restored) == to_json(orch.state)
    assert restored.player("player1").score == 1


def test_failing_subscriber_does_not_break_game():
    cfg = GameConfig("local-multiplayer", "color", "4x4")

    def boom(_event):
        raise RuntimeError("renderer crashed")

    async def run():
        orch, rec, _store = _orch(cfg)
        orch.bus.subscribe(EventType.CARD_FLIPPED, boom)
        await orch.start()
        assert await orch.human_flip(0)
        return rec

    rec = asyncio.run(run())
    assert len(rec.of_type(EventType.CARD_FLIPPED)) == 1


def test_pause_during_ai_lead_in_can_resume():
    cfg = GameConfig("ai-vs-ai", "color", "4x4", ai_difficulty="easy", ai2_difficulty="easy")
    # Easy reaction is 1-2 s; scaled here to 50-100 ms
    timings = replace(OrchestratorTimings.instant(), ai_turn_lead_in=0.05, ai_delay_scale=0.05)

    async def run():
        orch, rec, _store = _orch(cfg, timings=timings)
        await orch.start()
        await asyncio.sleep(0.01)
        paused = await orch.toggle_pause()
        await asyncio.sleep(0.05)
        flips_while_paused = len(rec.of_type(EventType.CARD_FLIPPED))
        resumed = await orch.toggle_pause()
        status = orch.state.game_status if orch.state is not None else None
        await orch.end()
        return paused, resumed, status, flips_while_paused

    paused, resumed, status, flips_while_paused = asyncio.run(run())
    assert paused is True
    assert resumed is True
    assert status == "playing"
    assert flips_while_paused == 0


def test_only_one_ai_decision_in_flight():
    cfg = GameConfig("ai-vs-ai", "color", "4x4", ai_difficulty="medium", ai2_difficulty="medium")

    async def run():
        orch, _rec, _store = _orch(cfg)
        await orch.start()
        gate = asyncio.Event()
        calls = []
        overlaps = []

        def gated(seat, original):
            async def decide(*args, **kwargs):
                calls.append(seat)
                overlaps.append(all(orch._in_flight.values()))
                await gate.wait()
                return await original(*args, **kwargs)
            return decide

        for seat, ai in orch.ai_players.items():
            ai.decide = gated(seat, ai.decide)

        for _ in range(5):
            await asyncio.sleep(0)
        task = orch._ai_task
        orch._kick()
        orch._kick()
        assert orch._ai_task is task
        other = "ai2" if calls and calls[0] == "ai1" else "ai1"
        busy = await orch._run_ai_turn(other, orch._generation)
        for _ in range(5):
            await asyncio.sleep(0)
        in_flight = dict(orch._in_flight)
        await orch.end()
        return calls, overlaps, busy, in_flight

    calls, overlaps, busy, in_flight = asyncio.run(run())
    assert calls == ["ai1"]
    assert overlaps == [False]
    assert busy == "busy"
    assert in_flight == {"ai1": True, "ai2": False}
