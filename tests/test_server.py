import asyncio

from fastapi.testclient import TestClient
import pytest
from starlette.websockets import WebSocketDisconnect

from bertrand.bots import BotBidder
from bertrand.server import BertrandManager, create_app
from bertrand.session_names import NAME_CATEGORIES


SESSION = {
    "name": "Test Game",
    "total_rounds": 2,
    "round_time_limit": 60,
    "min_bid": 1,
    "max_bid": 100,
    "cost_per_unit": 50,
    "max_players": 10,
}


@pytest.fixture
def manager(engine):
    return BertrandManager(engine=engine)


@pytest.fixture
def client(manager):
    return TestClient(create_app(manager, start_autopilot=False))


@pytest.fixture
def game(client):
    """A session with Alice and Bob registered."""
    assert client.post("/sessions", json=SESSION).status_code == 201
    for name in ("Alice", "Bob"):
        assert client.post("/sessions/test-game/players", json={"name": name}).status_code == 200
    return "/sessions/test-game"


def play(client, game, alice, bob):
    assert client.post(f"{game}/rounds/start").status_code == 200
    client.post(f"{game}/bids", json={"player": "Alice", "bid": alice})
    client.post(f"{game}/bids", json={"player": "Bob", "bid": bob})
    return client.post(f"{game}/rounds/end")


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_session(client):
    response = client.post("/sessions", json=SESSION)
    assert response.status_code == 201
    body = response.json()
    assert body["id"] == "test-game"
    assert body["status"] == "active"
    assert body["game_state"]["current_round"] == 1
    assert body["game_state"]["round_active"] is False

    duplicate = client.post("/sessions", json=SESSION)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "StateConflictError"

    listed = client.get("/sessions").json()
    assert [s["id"] for s in listed] == ["test-game"]


def test_create_session_with_generated_name(client):
    first = client.post("/sessions", json={}).json()
    second = client.post("/sessions", json={}).json()
    assert first["id"] == first["name"]
    assert first["name"].split("-")[1] in NAME_CATEGORIES["animals"]
    assert second["name"].split("-")[1] in NAME_CATEGORIES["flowers"]


def test_bad_session_config(client):
    response = client.post("/sessions", json={**SESSION, "cost_per_unit": 0})
    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"


def test_unknown_session(client):
    assert client.get("/sessions/missing").status_code == 404
    assert client.post("/sessions/missing/rounds/start").status_code == 404


def test_round_over_http(client, game):
    assert client.post(f"{game}/rounds/start").json()["round_active"] is True
    assert client.post(f"{game}/rounds/start").status_code == 409

    assert client.post(f"{game}/bids", json={"player": "Alice", "bid": 500}).status_code == 400
    assert client.post(f"{game}/bids", json={"player": "Zed", "bid": 50}).status_code == 404
    client.post(f"{game}/bids", json={"player": "Alice", "bid": 60})
    assert client.post(f"{game}/rounds/end").status_code == 409

    client.post(f"{game}/bids", json={"player": "Bob", "bid": 40})
    body = client.post(f"{game}/rounds/end").json()

    assert body["result"]["round"] == 1
    assert body["result"]["profits"]["Alice"] == pytest.approx(1192, abs=1)
    assert body["result"]["profits"]["Bob"] == pytest.approx(-8808, abs=1)
    assert body["timeout_bids"] == 0
    assert body["state"]["current_round"] == 2


def test_full_game_reaches_leaderboard(client, game):
    assert client.get("/leaderboard").json() == []

    play(client, game, 60, 40)
    final = play(client, game, 45, 50).json()
    assert final["state"]["is_ended"] is True
    assert client.get(game).json()["status"] == "completed"

    board = client.get("/leaderboard").json()
    assert [e["rank"] for e in board] == [1, 2]
    winner = next(e for e in board if e["games_won"] == 1)
    assert winner["username"] == "Alice"

    by_profit = client.get("/leaderboard", params={"order_by": "total_profit", "descending": False}).json()
    assert by_profit[0]["total_profit"] <= by_profit[1]["total_profit"]

    assert client.get("/leaderboard", params={"order_by": "password"}).status_code == 400


def test_admin_controls(client, game):
    assert client.post(f"{game}/players/Bob/timeout").json()["players"]["Bob"]["is_timed_out"] is True
    assert client.post(f"{game}/players/Bob/untimeout").json()["players"]["Bob"]["is_timed_out"] is False

    rivalries = client.put(f"{game}/rivalries", json={"rivalries": {"Alice": ["Bob"]}}).json()
    assert rivalries["rivalries"] == {"Alice": ["Bob"], "Bob": ["Alice"]}
    assert client.put(f"{game}/rivalries", json={"rivalries": {"Alice": ["Zed"]}}).status_code == 404
    assert client.post(f"{game}/rivalries/auto").json()["custom_rivalries"] is True

    start = client.post(f"{game}/rounds/start").json()["round_start_time"]
    extended = client.post(f"{game}/rounds/extend", json={"seconds": 30}).json()
    assert extended["round_start_time"] == start + 30_000

    state = client.post(f"{game}/autopilot", json={"enabled": True}).json()
    assert state["autopilot"]["enabled"] is True

    state = client.delete(f"{game}/players/Bob").json()
    assert list(state["players"]) == ["Alice"]


def test_game_lifecycle(client, game):
    assert client.post(f"{game}/start").status_code == 409
    assert client.post(f"{game}/end").json()["is_ended"] is True
    assert client.get(game).json()["status"] == "completed"

    assert client.post(f"{game}/reset").json()["has_game_started"] is False
    assert client.post(f"{game}/start").json()["is_active"] is True

    assert client.post(f"{game}/status", json={"status": "archived"}).json()["status"] == "archived"
    assert client.post(f"{game}/status", json={"status": "paused"}).status_code == 400

    assert client.delete(game).json() == {"deleted": "test-game"}
    assert client.get(game).status_code == 404


def test_add_bot(client, game, manager, monkeypatch):
    assert client.post(f"{game}/bots", json={"name": "Robo", "model": "gpt-1"}).status_code == 400
    state = client.post(f"{game}/bots", json={"name": "Robo", "model": "gpt-5"}).json()
    assert "Robo" in state["players"]
    assert isinstance(manager.bots["test-game"]["Robo"], BotBidder)

    monkeypatch.setattr(BotBidder, "choose_bid", lambda self, state: 42.0)
    manager.engine.start_round("test-game")
    asyncio.run(manager.play_bots("test-game"))
    assert manager.engine.get_state("test-game").round_bids == {"Robo": 42.0}


def receive_until(ws, msg_type, limit=5):
    """Read messages until one of msg_type arrives; returns every type seen."""
    seen = []
    for _ in range(limit):
        msg = ws.receive_json()
        seen.append(msg["type"])
        if msg["type"] == msg_type:
            return seen
    raise AssertionError(f"no {msg_type} message in {seen}")


def test_websocket(client, game):
    with client.websocket_connect("/sessions/test-game/ws") as ws:
        first = ws.receive_json()
        assert first["type"] == "state"
        assert set(first["state"]["players"]) == {"Alice", "Bob"}

        ws.send_json({"type": "ping"})
        assert "pong" in receive_until(ws, "pong")

        client.post(f"{game}/rounds/start")
        ws.send_json({"type": "submit_bid", "player": "Alice", "bid": 60})
        seen = receive_until(ws, "bid_accepted")

        ws.send_json({"type": "submit_bid", "player": "Alice", "bid": 5000})
        seen += receive_until(ws, "error")
        assert "state" in seen

        ws.send_json({"type": "dance"})
        assert receive_until(ws, "error")

    assert client.get(game).json()["game_state"]["round_bids"] == {"Alice": 60}


def test_websocket_unknown_session(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/sessions/missing/ws"):
            pass


def test_websocket_bad_frames_and_cleanup(client, game, manager):
    with client.websocket_connect("/sessions/test-game/ws") as ws:
        assert ws.receive_json()["type"] == "state"

        ws.send_text("not json")
        assert receive_until(ws, "error")
        ws.send_json(["submit_bid"])
        assert receive_until(ws, "error")

        ws.send_json({"type": "ping"})
        assert "pong" in receive_until(ws, "pong")
        assert "test-game" in manager.hub.channels
        assert "test-game" in manager._unsubscribe

    assert manager.hub.channels == {}
    assert manager._unsubscribe == {}
