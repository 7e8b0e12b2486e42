"""
Action Processing Tests

End-to-end actions through the engine and the local cluster:
- Spatial and resource rules
- Privacy of burials
- Dig consumption
- Single in-flight action per identity
- Timeouts and gateway failures
"""

import asyncio
import json
import logging
import time

from backend.app.core import (
    ActionRequest, ActionStatus, ActionType, Coordinate, ErrorKind, GameEventType,
    create_game,
)
from .conftest import LAYOUT, WALLET_A, WALLET_B, fast_config


# =============================================================================
# Spatial rules
# =============================================================================

def test_move_adjacency(engine, place):
    """Test self-move and distance-2 moves are rejected, diagonal step succeeds"""
    place(WALLET_A, 5, 5)

    outcome = asyncio.run(engine.move(WALLET_A, 5, 5))
    assert not outcome.success
    assert outcome.status == ActionStatus.REJECTED
    assert outcome.error_kind == ErrorKind.RULE_VIOLATION

    outcome = asyncio.run(engine.move(WALLET_A, 7, 7))
    assert outcome.error_kind == ErrorKind.RULE_VIOLATION
    assert outcome.message == "Invalid move: not adjacent"

    outcome = asyncio.run(engine.move(WALLET_A, 6, 6))
    assert outcome.success
    assert outcome.data == {"newX": 6, "newY": 6}
    assert engine.get_state(WALLET_A).position == Coordinate(6, 6)
    print("✓ Move adjacency enforced")


def test_move_out_of_bounds(engine):
    """Test moves off the grid are rejected"""
    engine.register(WALLET_A)
    outcome = asyncio.run(engine.move(WALLET_A, -1, 0))
    assert outcome.error_kind == ErrorKind.RULE_VIOLATION
    assert outcome.message == "Out of bounds"
    assert engine.get_state(WALLET_A).position == Coordinate(0, 0)


def test_request_lifecycle(engine):
    """Test an applied action walks through every state in order"""
    engine.register(WALLET_A)
    request = ActionRequest(ActionType.MOVE, WALLET_A, Coordinate(1, 1))
    outcome = asyncio.run(engine.perform(request))
    assert outcome.success
    assert request.history == [
        ActionStatus.VALIDATED, ActionStatus.SUBMITTED,
        ActionStatus.AWAITING, ActionStatus.APPLIED,
    ]
    assert request.job_id is not None
    assert request.sequence == 1


def test_validator_helpers(engine):
    """Test validate() and valid target listing"""
    record, _ = engine.register(WALLET_A)
    validator = engine.processor.validator

    ok, error = validator.validate(ActionRequest(ActionType.EXPLORE, WALLET_A, Coordinate(5, 5)), record)
    assert not ok
    assert error == "Not adjacent"

    ok, error = validator.validate(ActionRequest(ActionType.EXPLORE, WALLET_A, Coordinate(0, 0)), record)
    assert ok and error == ""

    assert len(engine.get_valid_targets(WALLET_A, ActionType.MOVE)) == 3
    assert len(engine.get_valid_targets(WALLET_A, ActionType.EXPLORE)) == 4


# =============================================================================
# Explore
# =============================================================================

def test_explore_twice_rejected(engine, place):
    """Test exploring (3,3) succeeds once and then is a rule violation"""
    place(WALLET_A, 2, 2)

    first = asyncio.run(engine.explore(WALLET_A, 3, 3))
    assert first.success
    assert first.data == {"tileType": "treasure", "value": 10}
    assert first.message == "You found treasure! +10 gold"
    assert engine.get_state(WALLET_A).gold == 30

    second = asyncio.run(engine.explore(WALLET_A, 3, 3))
    assert not second.success
    assert second.error_kind == ErrorKind.RULE_VIOLATION
    assert not second.retryable
    assert second.message == "Already explored"
    assert engine.get_state(WALLET_A).gold == 30
    print("✓ Explore is rejected the second time")


def test_explore_own_tile_and_trap(engine):
    """Test the own tile can be explored and traps cost health"""
    engine.register(WALLET_A)

    outcome = asyncio.run(engine.explore(WALLET_A, 0, 0))
    assert outcome.data == {"tileType": "empty", "value": 0}
    assert outcome.message == "This tile is empty."

    outcome = asyncio.run(engine.explore(WALLET_A, 0, 1))
    assert outcome.data == {"tileType": "trap", "value": 15}
    assert outcome.message == "You triggered a trap! -15 health"
    assert engine.get_state(WALLET_A).health == 85


# =============================================================================
# Bury
# =============================================================================

def test_bury_conservation(engine):
    """Test burying 10 leaves 10 gold, burying 25 is rejected"""
    engine.register(WALLET_A)

    outcome = asyncio.run(engine.bury(WALLET_A, 1, 0, 25))
    assert outcome.error_kind == ErrorKind.RULE_VIOLATION
    assert outcome.message == "Insufficient gold"
    assert engine.get_state(WALLET_A).gold == 20

    outcome = asyncio.run(engine.bury(WALLET_A, 1, 1, 10))
    assert outcome.success
    assert outcome.data == {"newGold": 10}
    assert engine.get_state(WALLET_A).gold == 10
    print("✓ Bury conserves gold")


def test_bury_requires_amount(engine):
    """Test a bury without an amount is invalid input"""
    engine.register(WALLET_A)
    request = ActionRequest(ActionType.BURY, WALLET_A, Coordinate(1, 1))
    outcome = asyncio.run(engine.perform(request))
    assert outcome.error_kind == ErrorKind.INVALID_INPUT
    assert request.history == [ActionStatus.REJECTED]


def test_bury_privacy(engine, place):
    """Test bury responses and public traces never identify the depositor"""
    place(WALLET_A, 4, 4)
    place(WALLET_B, 8, 8)

    a = asyncio.run(engine.bury(WALLET_A, 4, 5, 5))
    b = asyncio.run(engine.bury(WALLET_B, 9, 9, 7))

    assert set(a.to_dict()) == set(b.to_dict())
    for outcome, wallet in ((a, WALLET_A), (b, WALLET_B)):
        text = json.dumps(outcome.to_dict())
        assert wallet not in text
        assert wallet[:8] not in text

    public_burials = [
        e for e in engine.get_event_history()
        if e.action_type == ActionType.BURY
    ]
    assert public_burials
    for event in public_burials:
        assert event.player is None
        text = json.dumps(event.to_dict())
        assert WALLET_A not in text and WALLET_B not in text

    # Observers see the same thing for both burials
    shapes = {json.dumps({k: v for k, v in e.to_dict().items() if k != "timestamp"})
              for e in public_burials}
    assert len(shapes) == 2  # one SUBMITTED and one APPLIED shape, shared by both

    burial_facts = [f for f in engine.account_ledger.facts if f["kind"] == "bury"]
    assert len(burial_facts) == 2
    for fact in burial_facts:
        assert "identity" not in fact
        assert WALLET_A[:8] not in fact["handle"] and WALLET_B[:8] not in fact["handle"]
    print("✓ Burials are unlinkable")


def test_bury_logs_nothing_identifying(engine, caplog):
    """Test log lines for a bury carry no identity, coordinate or amount"""
    engine.register(WALLET_A)
    caplog.clear()
    with caplog.at_level(logging.DEBUG):
        outcome = asyncio.run(engine.bury(WALLET_A, 1, 1, 13))
    assert outcome.success
    assert caplog.records
    for record in caplog.records:
        message = record.getMessage()
        assert WALLET_A[:8] not in message
        assert "(1, 1)" not in message
        assert 13 not in (record.args or ())


# =============================================================================
# Dig
# =============================================================================

def test_dig_consumption(engine, place):
    """Test loot buried by A is dug up once by B and never again"""
    place(WALLET_A, 1, 1)
    place(WALLET_B, 2, 2)

    assert asyncio.run(engine.bury(WALLET_A, 2, 1, 10)).success

    found = asyncio.run(engine.dig(WALLET_B, 2, 1))
    assert found.success
    assert found.data == {"foundType": "treasure", "totalValue": 10, "healthLost": 0}
    assert found.message == "Found loot! +10 gold"
    assert engine.get_state(WALLET_B).gold == 30

    again = asyncio.run(engine.dig(WALLET_A, 2, 1))
    assert again.data["totalValue"] == 0
    assert again.message == "Nothing found here."
    print("✓ Loot dug up once")


def test_dig_result_hides_layers(engine, place):
    """Test a dig answer has the same fields whichever layer contributed"""
    place(WALLET_A, 1, 1)
    asyncio.run(engine.bury(WALLET_A, 2, 2, 5))

    from_loot = asyncio.run(engine.dig(WALLET_A, 2, 2))
    from_map = asyncio.run(engine.dig(WALLET_A, 1, 0))
    assert set(from_loot.data) == set(from_map.data) == {"foundType", "totalValue", "healthLost"}
    assert from_map.data["totalValue"] == LAYOUT[Coordinate(1, 0)][1]


def test_dig_trap(engine):
    """Test digging a trap reports health lost"""
    engine.register(WALLET_A)
    outcome = asyncio.run(engine.dig(WALLET_A, 0, 1))
    assert outcome.data == {"foundType": "trap", "totalValue": 0, "healthLost": 15}
    assert outcome.message == "Trap triggered! -15 health"
    record = engine.get_state(WALLET_A)
    assert record.health == 85
    assert Coordinate(0, 1) in record.explored_tiles


# =============================================================================
# Registration and lifecycle
# =============================================================================

def test_unregistered_and_invalid(engine):
    """Test unknown identities and malformed requests"""
    outcome = asyncio.run(engine.move("stranger", 1, 1))
    assert outcome.error_kind == ErrorKind.NOT_REGISTERED

    outcome = asyncio.run(engine.move("", 1, 1))
    assert outcome.error_kind == ErrorKind.INVALID_INPUT

    engine.register(WALLET_A)
    outcome = asyncio.run(engine.move(WALLET_A, "1", 1))
    assert outcome.error_kind == ErrorKind.INVALID_INPUT
    outcome = asyncio.run(engine.move(WALLET_A, True, 1))
    assert outcome.error_kind == ErrorKind.INVALID_INPUT


def test_closed_game(engine):
    """Test a closed game rejects actions but still answers queries"""
    engine.register(WALLET_A)
    engine.close()
    assert not engine.is_active

    outcome = asyncio.run(engine.move(WALLET_A, 1, 1))
    assert outcome.error_kind == ErrorKind.RULE_VIOLATION
    assert outcome.message == "Game is not active"
    assert engine.get_state(WALLET_A).position == Coordinate(0, 0)
    assert engine.get_event_history(event_type=GameEventType.GAME_CLOSED)


# =============================================================================
# Concurrency
# =============================================================================

def test_same_identity_busy(engine):
    """Test a second action while one is in flight is rejected with Busy"""
    engine.register(WALLET_A)

    async def scenario():
        first = asyncio.create_task(engine.move(WALLET_A, 1, 1))
        await asyncio.sleep(0)
        assert engine.is_busy(WALLET_A)
        second = await engine.explore(WALLET_A, 1, 0)
        return await first, second

    first, second = asyncio.run(scenario())
    assert first.success
    assert second.status == ActionStatus.REJECTED
    assert second.error_kind == ErrorKind.BUSY
    assert second.retryable
    assert not engine.is_busy(WALLET_A)

    record = engine.get_state(WALLET_A)
    assert record.position == Coordinate(1, 1)
    assert record.explored_tiles == set()
    print("✓ Busy returned for overlapping actions")


def test_distinct_identities_run_in_parallel():
    """Test actions of different players overlap instead of queueing"""
    engine = create_game(fast_config(compute_latency=0.2), layout=LAYOUT)
    engine.register(WALLET_A)
    engine.register(WALLET_B)

    async def scenario():
        started = time.monotonic()
        results = await asyncio.gather(
            engine.move(WALLET_A, 1, 1),
            engine.explore(WALLET_B, 1, 0),
        )
        return results, time.monotonic() - started

    (move, explore), elapsed = asyncio.run(scenario())
    assert move.success and explore.success
    assert engine.get_state(WALLET_B).gold == 50
    assert elapsed < 0.4
    print(f"✓ Two players finished in {elapsed:.2f}s")


def test_each_job_executes_once(engine):
    """Test every applied action ran exactly one computation"""
    engine.register(WALLET_A)
    asyncio.run(engine.explore(WALLET_A, 1, 0))
    asyncio.run(engine.dig(WALLET_A, 1, 1))
    asyncio.run(engine.move(WALLET_A, 1, 1))
    executions = engine.gateway.executions
    assert len(executions) == 3
    assert set(executions.values()) == {1}


# =============================================================================
# Gateway failures
# =============================================================================

def test_timeout_is_retryable_and_drops_late_result():
    """Test a timed-out action changes nothing, even when the result shows up later"""
    engine = create_game(fast_config(compute_latency=0.2, action_timeout=0.02), layout=LAYOUT)
    engine.register(WALLET_A)

    async def scenario():
        outcome = await engine.explore(WALLET_A, 1, 0)
        await asyncio.sleep(0.3)
        return outcome

    outcome = asyncio.run(scenario())
    assert outcome.status == ActionStatus.TIMED_OUT
    assert outcome.error_kind == ErrorKind.TIMED_OUT
    assert outcome.retryable
    assert outcome.error_kind.state_unknown

    record = engine.get_state(WALLET_A)
    assert record.gold == 20
    assert record.explored_tiles == set()
    assert not engine.is_busy(WALLET_A)
    assert engine.get_stats()["timed_out"] == 1
    print("✓ Timeout reported and late result dropped")


def test_compute_unavailable(engine):
    """Test a refused job fails as retryable with no state change"""
    engine.register(WALLET_A)
    engine.gateway.available = False

    outcome = asyncio.run(engine.explore(WALLET_A, 1, 0))
    assert outcome.status == ActionStatus.FAILED
    assert outcome.error_kind == ErrorKind.COMPUTE_UNAVAILABLE
    assert outcome.retryable
    assert engine.get_state(WALLET_A).gold == 20
    assert not engine.is_busy(WALLET_A)


def test_rate_limited_cluster():
    """Test back-pressure from the cluster surfaces as compute unavailable"""
    engine = create_game(fast_config(compute_latency=0.1, max_pending_jobs=1), layout=LAYOUT)
    engine.register(WALLET_A)
    engine.register(WALLET_B)

    async def scenario():
        return await asyncio.gather(
            engine.move(WALLET_A, 1, 1),
            engine.move(WALLET_B, 0, 1),
        )

    first, second = asyncio.run(scenario())
    assert first.success
    assert second.error_kind == ErrorKind.COMPUTE_UNAVAILABLE
    assert engine.get_state(WALLET_B).position == Coordinate(0, 0)
