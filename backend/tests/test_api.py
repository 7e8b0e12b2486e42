"""
API Tests

Tests for the FastAPI endpoints:
- Root and health
- Registration and state
- Game actions and error mapping
- WebSocket
"""

import pytest

from fastapi.testclient import TestClient
from backend.app.api.main import app
from backend.app.api.routes.game import get_engine
from backend.app.core import create_game
from .conftest import LAYOUT, WALLET_A, WALLET_B, fast_config


# =============================================================================
# Test Client
# =============================================================================

client = TestClient(app)


@pytest.fixture(autouse=True)
def fresh_engine(engine):
    """Every test gets its own game"""
    app.dependency_overrides[get_engine] = lambda: engine
    yield engine
    app.dependency_overrides.clear()


def register(wallet=WALLET_A):
    return client.post("/api/game/register", json={"wallet": wallet})


def use_engine(engine):
    app.dependency_overrides[get_engine] = lambda: engine


# =============================================================================
# Root Endpoint Tests
# =============================================================================

def test_root_endpoint():
    """Test root endpoint returns welcome message"""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "message" in data
    assert "Buried Treasure" in data["message"]
    assert set(data["actions"]) == {"move", "explore", "dig", "bury"}
    print("✓ Root endpoint works")


def test_health_check():
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    print("✓ Health check works")


def test_game_info(fresh_engine):
    """Test public game metadata"""
    register()
    response = client.get("/api/game/info")
    assert response.status_code == 200
    data = response.json()
    assert data["gameId"] == fresh_engine.game_id
    assert data["playerCount"] == 1
    assert data["isActive"] is True


# =============================================================================
# Registration and State
# =============================================================================

def test_register():
    """Test registering a wallet returns a tx and the initial state"""
    response = register()
    assert response.status_code == 200
    data = response.json()
    assert data["tx"].startswith("register_")
    assert data["state"]["x"] == 0 and data["state"]["y"] == 0
    assert data["state"]["gold"] == 20
    assert data["state"]["health"] == 100
    assert data["state"]["explored"] == []
    print(f"✓ Registered with tx {data['tx']}")


def test_register_twice():
    """Test registration is idempotent"""
    first = register().json()
    second = register().json()
    assert first["tx"] == second["tx"]
    assert first["state"] == second["state"]


def test_register_missing_wallet():
    """Test a missing wallet is invalid input"""
    response = client.post("/api/game/register", json={})
    assert response.status_code == 400
    data = response.json()
    assert data["kind"] == "INVALID_INPUT"
    assert data["retryable"] is False
    assert data["status_code"] == 400


def test_state_auto_registers(fresh_engine):
    """Test the state query registers unknown wallets"""
    response = client.get("/api/game/state", params={"wallet": WALLET_B})
    assert response.status_code == 200
    assert response.json()["state"]["gold"] == 20
    assert fresh_engine.is_registered(WALLET_B)


def test_state_unregistered_when_auto_register_off():
    """Test 404 for unknown wallets when auto registration is off"""
    use_engine(create_game(fast_config(auto_register_on_query=False), layout=LAYOUT))
    response = client.get("/api/game/state", params={"wallet": WALLET_B})
    assert response.status_code == 404
    assert response.json()["kind"] == "NOT_REGISTERED"


# =============================================================================
# Action Tests
# =============================================================================

def test_move():
    """Test a valid move"""
    register()
    response = client.post("/api/game/move", json={"wallet": WALLET_A, "targetX": 1, "targetY": 1})
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["newX"] == 1 and data["newY"] == 1
    assert data["state"]["x"] == 1
    print("✓ Move works")


def test_move_not_adjacent():
    """Test rule violations map to 400 and are not retryable"""
    register()
    response = client.post("/api/game/move", json={"wallet": WALLET_A, "targetX": 2, "targetY": 2})
    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "Invalid move: not adjacent"
    assert data["kind"] == "RULE_VIOLATION"
    assert data["retryable"] is False


def test_move_bad_coordinates():
    """Test non-numeric coordinates are invalid input"""
    register()
    response = client.post("/api/game/move", json={"wallet": WALLET_A, "targetX": "east", "targetY": 1})
    assert response.status_code == 400
    assert response.json()["kind"] == "INVALID_INPUT"


def test_action_unregistered():
    """Test actions for unknown wallets map to 404"""
    response = client.post("/api/game/explore", json={"wallet": WALLET_B, "targetX": 0, "targetY": 0})
    assert response.status_code == 404
    assert response.json()["kind"] == "NOT_REGISTERED"


def test_explore_twice():
    """Test exploring the same tile twice"""
    register()
    payload = {"wallet": WALLET_A, "targetX": 1, "targetY": 0}
    first = client.post("/api/game/explore", json=payload)
    assert first.status_code == 200
    assert first.json()["tileType"] == "treasure"
    assert first.json()["value"] == 30

    second = client.post("/api/game/explore", json=payload)
    assert second.status_code == 400
    assert second.json()["error"] == "Already explored"


def test_bury_response_has_no_identity():
    """Test bury responses carry the new balance and nothing else"""
    register(WALLET_A)
    register(WALLET_B)

    a = client.post("/api/game/bury", json={"wallet": WALLET_A, "targetX": 1, "targetY": 1, "amount": 10})
    b = client.post("/api/game/bury", json={"wallet": WALLET_B, "targetX": 0, "targetY": 1, "amount": 3})
    assert a.status_code == 200 and b.status_code == 200
    assert set(a.json()) == set(b.json()) == {"action", "status", "success", "message", "newGold"}
    assert a.json()["newGold"] == 10
    assert b.json()["newGold"] == 17
    assert WALLET_A[:8] not in a.text
    assert WALLET_B[:8] not in b.text
    print("✓ Bury responses are anonymous")


def test_bury_too_much():
    """Test burying more than you own"""
    register()
    response = client.post("/api/game/bury", json={"wallet": WALLET_A, "targetX": 1, "targetY": 1, "amount": 25})
    assert response.status_code == 400
    assert response.json()["error"] == "Insufficient gold"
    state = client.get("/api/game/state", params={"wallet": WALLET_A}).json()["state"]
    assert state["gold"] == 20


def test_bury_then_dig():
    """Test loot buried by one player is dug up by another, once"""
    register(WALLET_A)
    register(WALLET_B)
    client.post("/api/game/bury", json={"wallet": WALLET_A, "targetX": 1, "targetY": 1, "amount": 10})

    dig = client.post("/api/game/dig", json={"wallet": WALLET_B, "targetX": 1, "targetY": 1})
    assert dig.status_code == 200
    data = dig.json()
    assert data["foundType"] == "treasure"
    assert data["totalValue"] == 10
    assert data["healthLost"] == 0

    again = client.post("/api/game/dig", json={"wallet": WALLET_A, "targetX": 1, "targetY": 1})
    assert again.json()["totalValue"] == 0


def test_dig_stats_do_not_reveal_layer():
    """Test a loot find and a base treasure find move the stats the same way"""
    register(WALLET_A)
    register(WALLET_B)
    client.post("/api/game/bury", json={"wallet": WALLET_A, "targetX": 1, "targetY": 1, "amount": 10})

    def stats():
        return client.get("/api/game/state", params={"wallet": WALLET_B}).json()["state"]["stats"]

    def delta(before, after):
        return {key: after[key] - before[key] for key in before}

    before_loot = stats()
    loot = client.post("/api/game/dig", json={"wallet": WALLET_B, "targetX": 1, "targetY": 1}).json()
    after_loot = stats()

    # (3,3) holds a base treasure worth 10
    client.post("/api/game/move", json={"wallet": WALLET_B, "targetX": 1, "targetY": 1})
    client.post("/api/game/move", json={"wallet": WALLET_B, "targetX": 2, "targetY": 2})
    before_base = stats()
    base = client.post("/api/game/dig", json={"wallet": WALLET_B, "targetX": 3, "targetY": 3}).json()
    after_base = stats()

    assert (loot["foundType"], loot["totalValue"]) == (base["foundType"], base["totalValue"]) == ("treasure", 10)
    assert delta(before_loot, after_loot) == delta(before_base, after_base)
    assert loot["state"]["stats"] == after_loot
    print("✓ Dig stats look the same for both layers")


def test_compute_unavailable(fresh_engine):
    """Test a refused job maps to 503 and is retryable"""
    register()
    fresh_engine.gateway.available = False
    response = client.post("/api/game/explore", json={"wallet": WALLET_A, "targetX": 1, "targetY": 0})
    assert response.status_code == 503
    data = response.json()
    assert data["kind"] == "COMPUTE_UNAVAILABLE"
    assert data["retryable"] is True


def test_timeout():
    """Test a timed-out action maps to 504"""
    use_engine(create_game(fast_config(compute_latency=0.2, action_timeout=0.01), layout=LAYOUT))
    register()
    response = client.post("/api/game/explore", json={"wallet": WALLET_A, "targetX": 1, "targetY": 0})
    assert response.status_code == 504
    data = response.json()
    assert data["kind"] == "TIMED_OUT"
    assert data["retryable"] is True


def test_closed_game(fresh_engine):
    """Test actions on a closed game are rejected"""
    register()
    fresh_engine.close()
    response = client.post("/api/game/move", json={"wallet": WALLET_A, "targetX": 1, "targetY": 1})
    assert response.status_code == 400
    assert response.json()["error"] == "Game is not active"


# =============================================================================
# WebSocket Tests
# =============================================================================

def receive_until(ws, msg_type):
    """Skip pushed events until a reply of the given type arrives"""
    events = []
    while True:
        message = ws.receive_json()
        if message["type"] == msg_type:
            return message, events
        events.append(message)


def test_websocket_ping_and_state():
    """Test ping and request_state messages"""
    register()
    with client.websocket_connect(f"/ws/game?wallet={WALLET_A}") as ws:
        connected = ws.receive_json()
        assert connected["type"] == "connected"

        ws.send_json({"type": "ping"})
        pong, _ = receive_until(ws, "pong")
        assert pong == {"type": "pong"}

        ws.send_json({"type": "request_state"})
        state, _ = receive_until(ws, "state")
        assert state["state"]["gold"] == 20
    print("✓ WebSocket ping and state work")


def test_websocket_action_and_events():
    """Test actions over the socket and the private event that follows"""
    register()
    with client.websocket_connect(f"/ws/game?wallet={WALLET_A}") as ws:
        receive_until(ws, "connected")
        ws.send_json({"type": "action", "action": "explore", "targetX": 1, "targetY": 0})
        reply, events = receive_until(ws, "action_result")
        assert reply["result"]["success"] is True
        assert reply["result"]["tileType"] == "treasure"

        ws.send_json({"type": "ping"})
        _, more = receive_until(ws, "pong")
        pushed = [m["event"] for m in events + more if m["type"] == "event"]
        applied = [e for e in pushed if e["type"] == "ACTION_APPLIED"]
        assert any(e["data"].get("tileType") == "treasure" for e in applied)


def test_websocket_bad_messages():
    """Test invalid JSON and unknown actions are reported"""
    with client.websocket_connect(f"/ws/game?wallet={WALLET_A}") as ws:
        receive_until(ws, "connected")
        ws.send_text("not json")
        error, _ = receive_until(ws, "error")
        assert error["message"] == "Invalid JSON"

        ws.send_json({"type": "action", "action": "teleport"})
        error, _ = receive_until(ws, "error")
        assert "Unknown action" in error["message"]
