from typing import Any, Dict, List, Tuple

from fastapi.testclient import TestClient
from backend.app import app


client = TestClient(app)


def _pair(state: Dict[str, Any], matching: bool) -> Tuple[int, int]:
    cards: List[Dict[str, Any]] = state["cards"]
    key = state["matchType"]
    for i, a in enumerate(cards):
        for j in range(i + 1, len(cards)):
            b = cards[j]
            if a["isFlipped"] or a["isMatched"] or b["isFlipped"] or b["isMatched"]:
                continue
            if (a[key] == b[key]) == matching:
                return i, j
    raise AssertionError("no such pair")


def _new(**body: Any) -> Dict[str, Any]:
    r = client.post("/new-game", json=body)
    assert r.status_code == 200, r.text
    return r.json()


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json().get("ok") is True


def test_new_game_shape():
    data = _new(gameMode="ai", matchType="color", boardSize="4x6", aiDifficulty="hard", seed=4)
    state = data["state"]
    assert state["schemaVersion"] == 1
    assert len(state["cards"]) == 24
    assert [p["id"] for p in state["players"]] == ["player1", "ai"]
    assert state["players"][1]["aiDifficulty"] == "hard"
    assert state["currentPlayerId"] == "player1"
    assert state["gameStatus"] == "playing"
    assert state["settings"]["hintsEnabled"] is False

    r = client.get(f"/state/{data['sessionId']}")
    assert r.status_code == 200
    assert r.json()["state"]["cards"] == state["cards"]


def test_human_mismatch_then_ai_step():
    data = _new(gameMode="ai", matchType="color", aiDifficulty="medium", seed=1)
    sid = data["sessionId"]
    i, j = _pair(data["state"], matching=False)

    r = client.post("/flip", json={"sessionId": sid, "index": i})
    assert r.status_code == 200 and r.json()["accepted"] is True
    r = client.post("/flip", json={"sessionId": sid, "index": j})
    state = r.json()["state"]
    assert len(state["flippedCardIds"]) == 2
    assert state["currentPlayerId"] == "ai"

    # Humans cannot flip on the AI's turn
    r = client.post("/flip", json={"sessionId": sid, "index": 0})
    assert r.status_code == 400

    # Mismatch still on display: step does nothing
    r = client.post("/step", json={"sessionId": sid})
    assert r.status_code == 200 and r.json()["move"] is None

    r = client.post("/reset-mismatch", json={"sessionId": sid})
    state = r.json()["state"]
    assert state["flippedCardIds"] == []
    assert not state["cards"][i]["isFlipped"]

    r = client.post("/step", json={"sessionId": sid})
    assert r.status_code == 200
    body = r.json()
    assert body["move"] is not None and len(body["move"]) == 2
    assert body["strategy"] is not None
    assert len(body["state"]["moveHistory"]) == 2


def test_step_rejected_on_human_turn():
    data = _new(gameMode="local-multiplayer", matchType="rank")
    r = client.post("/step", json={"sessionId": data["sessionId"]})
    assert r.status_code == 400


def test_illegal_flip_leaves_state():
    data = _new(gameMode="local-multiplayer", matchType="suit")
    sid = data["sessionId"]
    client.post("/flip", json={"sessionId": sid, "index": 2})
    r = client.post("/flip", json={"sessionId": sid, "index": 2})
    assert r.status_code == 200
    assert r.json()["accepted"] is False
    # Off the board for 4x4 but inside the request range
    r = client.post("/flip", json={"sessionId": sid, "index": 30})
    assert r.json()["accepted"] is False
    r = client.post("/flip", json={"sessionId": sid, "index": 99})
    assert r.status_code == 422


def test_ai_vs_ai_steps_to_finish():
    data = _new(gameMode="ai-vs-ai", matchType="color", aiDifficulty="expert", ai2Difficulty="hard", seed=8)
    sid = data["sessionId"]
    state = data["state"]
    for _ in range(500):
        if state["gameStatus"] == "finished":
            break
        if len(state["flippedCardIds"]) == 2:
            state = client.post("/reset-mismatch", json={"sessionId": sid}).json()["state"]
        else:
            r = client.post("/step", json={"sessionId": sid})
            assert r.status_code == 200
            state = r.json()["state"]
    assert state["gameStatus"] == "finished"
    assert sum(p["score"] for p in state["players"]) == 8


def test_hints_follow_settings():
    local = _new(gameMode="local-multiplayer", matchType="color")
    r = client.get(f"/hint/{local['sessionId']}")
    assert r.status_code == 200
    pair = r.json()["pair"]
    cards = local["state"]["cards"]
    assert cards[pair[0]]["color"] == cards[pair[1]]["color"]

    vs_ai = _new(gameMode="ai", matchType="color")
    assert client.get(f"/hint/{vs_ai['sessionId']}").status_code == 403

    opted_in = _new(gameMode="ai", matchType="color", hintsEnabled=True)
    assert client.get(f"/hint/{opted_in['sessionId']}").status_code == 200


def test_pause_toggles():
    data = _new(gameMode="local-multiplayer", matchType="color")
    sid = data["sessionId"]
    r = client.post("/pause", json={"sessionId": sid})
    assert r.json()["state"]["gameStatus"] == "paused"
    r = client.post("/flip", json={"sessionId": sid, "index": 0})
    assert r.json()["accepted"] is False
    r = client.post("/pause", json={"sessionId": sid})
    assert r.json()["state"]["gameStatus"] == "playing"


def test_load_and_delete():
    data = _new(gameMode="local-multiplayer", matchType="rank", seed=2)
    sid = data["sessionId"]
    client.post("/flip", json={"sessionId": sid, "index": 0})
    snapshot = client.get(f"/state/{sid}").json()["state"]

    r = client.post("/load", json={"snapshot": snapshot})
    assert r.status_code == 200
    loaded = r.json()
    assert loaded["sessionId"] != sid
    assert loaded["state"] == snapshot

    bad = dict(snapshot, schemaVersion=99)
    assert client.post("/load", json={"snapshot": bad}).status_code == 400

    assert client.delete(f"/session/{sid}").status_code == 200
    assert client.get(f"/state/{sid}").status_code == 404
    assert client.delete(f"/session/{sid}").status_code == 404


def test_bad_requests():
    assert client.post("/new-game", json={"gameMode": "solo", "matchType": "color"}).status_code == 422
    assert client.post("/new-game", json={"gameMode": "ai", "matchType": "color", "boardSize": "5x5"}).status_code == 422
    assert client.post("/flip", json={"sessionId": "nope", "index": 0}).status_code == 404
    assert client.get("/state/nope").status_code == 404
