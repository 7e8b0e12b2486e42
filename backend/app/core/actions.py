# =============================================================================
# Buried Treasure - Actions Module
# =============================================================================
"""
Handles action validation, arbitration and effect resolution.
All game actions flow through ActionValidator -> ActionProcessor.

One action moves through
    VALIDATED -> SUBMITTED -> AWAITING -> APPLIED
or ends early in REJECTED, TIMED_OUT or FAILED. Only APPLIED changes
state, and it does so in one transaction on the store and the ledger.

At most one action per identity is in flight. A second request for the
same identity is rejected with BUSY, never queued.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from .enums import ActionType, ActionStatus, ErrorKind, FoundKind, TileKind
from .data_structures import (
    ActionOutcome, ActionRequest, BusyError, ComputationJob, Coordinate,
    GameConfig, GameError, InvalidInputError, NotRegisteredError, PlayerRecord,
    RuleViolationError,
)
from .compute_gateway import CLUSTER_RECIPIENT, SecureComputationGateway, seal
from .events import GameEvent, GameEventType, private_event, public_event
from .player_store import PlayerRecordStore
from .reveal_ledger import RevealLedger
from .spatial import is_adjacent, is_in_bounds, neighbours

logger = logging.getLogger(__name__)


def _short(identity: str) -> str:
    return f"{identity[:8]}..." if len(identity) > 8 else identity


# =============================================================================
# Action Validation
# =============================================================================

class ActionValidator:
    """
    Validates game actions before they are submitted.

    Checks:
    - Request fields are well formed
    - Target is on the map
    - Target is adjacent (the own tile counts except for MOVE)
    - Action-specific preconditions (unexplored tile, enough gold)
    """

    def __init__(self, config: GameConfig):
        self.config = config

    def check_input(self, request: ActionRequest):
        """Reject malformed requests before anything else is touched"""
        if not isinstance(request.identity, str) or not request.identity.strip():
            raise InvalidInputError("Wallet address required")
        if not isinstance(request.action_type, ActionType):
            raise InvalidInputError("Unknown action type")
        target = request.target
        if not isinstance(target, Coordinate):
            raise InvalidInputError("Invalid parameters")
        for value in (target.x, target.y):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidInputError("Invalid parameters")
        if request.action_type.requires_amount:
            amount = request.amount
            if amount is None or isinstance(amount, bool) or not isinstance(amount, int):
                raise InvalidInputError("Invalid parameters")

    def check(self, request: ActionRequest, record: PlayerRecord):
        """
        Raise a RuleViolationError if the action may not be performed.
        """
        target = request.target
        action_type = request.action_type

        if not is_in_bounds(target, self.config.grid_size):
            raise RuleViolationError("Out of bounds")
        if action_type == ActionType.MOVE and target == record.position:
            raise RuleViolationError("Invalid move: cannot move onto your own tile")
        if not is_adjacent(record.position, target, action_type.includes_self):
            if action_type == ActionType.MOVE:
                raise RuleViolationError("Invalid move: not adjacent")
            raise RuleViolationError("Not adjacent")

        if action_type == ActionType.EXPLORE and record.has_explored(target):
            raise RuleViolationError("Already explored")
        if action_type == ActionType.BURY:
            if request.amount <= 0 or request.amount > record.gold:
                raise RuleViolationError("Insufficient gold")

    def validate(self, request: ActionRequest, record: PlayerRecord) -> Tuple[bool, str]:
        """
        Validate if an action can be performed.

        Returns:
            Tuple of (is_valid, error_message)
        """
        try:
            self.check_input(request)
            self.check(request, record)
        except GameError as e:
            return False, e.reason
        return True, ""

    def get_valid_targets(self, record: PlayerRecord, action_type: ActionType) -> List[Coordinate]:
        """All tiles the player could target with this action right now"""
        targets = []
        for coord in neighbours(record.position, self.config.grid_size,
                                include_self=action_type.includes_self):
            if action_type == ActionType.EXPLORE and record.has_explored(coord):
                continue
            targets.append(coord)
        if action_type == ActionType.BURY and record.gold <= 0:
            return []
        return targets


# =============================================================================
# Action Processing
# =============================================================================

class ActionProcessor:
    """
    Orchestrates one action end to end:
    validate -> submit to gateway -> await -> apply -> return outcome.

    Example usage:
        processor = ActionProcessor(config, store, ledger, gateway)
        outcome = await processor.process(
            ActionRequest(ActionType.EXPLORE, wallet, Coordinate(1, 0))
        )
    """

    def __init__(self, config: GameConfig, store: PlayerRecordStore,
                 ledger: RevealLedger, gateway: SecureComputationGateway,
                 emit: Optional[Callable[[GameEvent], None]] = None):
        self.config = config
        self.store = store
        self.ledger = ledger
        self.gateway = gateway
        self.validator = ActionValidator(config)
        self.emit = emit or (lambda event: None)
        self.active = True

        # Single in-flight slot per identity
        self._slots_lock = threading.Lock()
        self._in_flight: Dict[str, ActionRequest] = {}
        self._next_sequence: Dict[str, int] = {}
        self._last_applied: Dict[str, int] = {}

    # =========================================================================
    # In-flight slots
    # =========================================================================

    def _reserve(self, request: ActionRequest) -> bool:
        with self._slots_lock:
            if request.identity in self._in_flight:
                return False
            self._in_flight[request.identity] = request
            sequence = self._next_sequence.get(request.identity, 0) + 1
            self._next_sequence[request.identity] = sequence
            request.sequence = sequence
            return True

    def _release(self, request: ActionRequest):
        with self._slots_lock:
            if self._in_flight.get(request.identity) is request:
                del self._in_flight[request.identity]

    def is_busy(self, identity: str) -> bool:
        with self._slots_lock:
            return identity in self._in_flight

    # =========================================================================
    # Main entry point
    # =========================================================================

    async def process(self, request: ActionRequest) -> ActionOutcome:
        """
        Run one action to a terminal state.

        Never raises for game-level failures; every failure comes back as
        an ActionOutcome carrying an ErrorKind and a reason.
        """
        action_type = request.action_type

        # Pre-validation: input, game, registration, exclusivity
        try:
            self.validator.check_input(request)
            if not self.active:
                raise RuleViolationError("Game is not active")
            if request.identity not in self.store:
                raise NotRegisteredError("Player not registered")
            if not self._reserve(request):
                raise BusyError("Another action is already in progress")
        except GameError as e:
            return self._reject(request, e)

        try:
            return await self._run(request)
        except GameError as e:
            logger.warning("%s failed: %s", action_type.name, e.reason)
            return self._fail(request, e)
        except Exception:
            logger.exception("Unexpected error while processing %s", action_type.name)
            return self._fail(request, GameError("Internal error"))
        finally:
            self._release(request)

    async def _run(self, request: ActionRequest) -> ActionOutcome:
        # Validated
        record = self.store.get(request.identity)
        if record is None:
            return self._reject(request, NotRegisteredError("Player not registered"))
        try:
            self.validator.check(request, record)
        except GameError as e:
            return self._reject(request, e)
        request.transition(ActionStatus.VALIDATED)

        # Submitted
        job = ComputationJob(
            kind=request.action_type,
            requester=request.identity,
            encrypted_input=seal(self._job_input(request), CLUSTER_RECIPIENT),
        )
        try:
            handle = self.gateway.submit(job)
        except GameError as e:
            return self._fail(request, e)
        request.job_id = handle.job_id
        request.transition(ActionStatus.SUBMITTED)
        self.emit(public_event(GameEventType.ACTION_SUBMITTED, request.identity, request.action_type))

        # Awaiting
        request.transition(ActionStatus.AWAITING)
        try:
            sealed = await self.gateway.await_result(handle, self.config.action_timeout)
        except GameError as e:
            self.gateway.discard(handle)
            if e.kind == ErrorKind.TIMED_OUT:
                return self._timed_out(request)
            return self._fail(request, e)

        # Applied
        try:
            result = sealed.open(request.identity)
            outcome = self._apply(request, result)
        except RuleViolationError as e:
            return self._reject(request, e)
        finally:
            self.gateway.release(handle)
        request.transition(ActionStatus.APPLIED)
        self._last_applied[request.identity] = request.sequence

        if request.action_type == ActionType.BURY:
            logger.info("%s applied", request)
        else:
            logger.info("%s applied for %s", request, _short(request.identity))
        self.emit(private_event(GameEventType.ACTION_APPLIED, request.identity, outcome))
        self.emit(public_event(GameEventType.ACTION_APPLIED, request.identity, request.action_type))
        return outcome

    # =========================================================================
    # Effects
    # =========================================================================

    @staticmethod
    def _job_input(request: ActionRequest) -> Dict[str, int]:
        payload = {"x": request.target.x, "y": request.target.y}
        if request.action_type == ActionType.BURY:
            payload["amount"] = request.amount
        return payload

    def _apply(self, request: ActionRequest, result: Dict) -> ActionOutcome:
        """Fold a cluster result into the store and ledger"""
        if request.sequence <= self._last_applied.get(request.identity, 0):
            raise GameError("Out-of-order result")

        appliers = {
            ActionType.MOVE: self._apply_move,
            ActionType.EXPLORE: self._apply_explore,
            ActionType.DIG: self._apply_dig,
            ActionType.BURY: self._apply_bury,
        }
        return appliers[request.action_type](request, result)

    def _apply_move(self, request: ActionRequest, result: Dict) -> ActionOutcome:
        target = Coordinate(int(result["x"]), int(result["y"]))

        def move(record: PlayerRecord) -> Coordinate:
            if not is_adjacent(record.position, target, include_self=False):
                raise RuleViolationError("Invalid move: not adjacent")
            record.position = target
            return target

        self.store.mutate(request.identity, move)
        return ActionOutcome.applied(
            ActionType.MOVE,
            f"Moved to {target}",
            {"newX": target.x, "newY": target.y},
        )

    def _apply_explore(self, request: ActionRequest, result: Dict) -> ActionOutcome:
        kind = TileKind(int(result["tile_kind"]))
        reveal = self.ledger.record_exploration(
            request.identity, request.target, kind, int(result["value"])
        )
        if reveal.tile_kind == TileKind.TREASURE:
            message = f"You found treasure! +{reveal.value} gold"
        elif reveal.tile_kind == TileKind.TRAP:
            message = f"You triggered a trap! -{reveal.value} health"
        else:
            message = "This tile is empty."
        return ActionOutcome.applied(
            ActionType.EXPLORE,
            message,
            {"tileType": str(reveal.tile_kind), "value": reveal.value},
        )

    def _apply_dig(self, request: ActionRequest, result: Dict) -> ActionOutcome:
        base = (TileKind(int(result["tile_kind"])), int(result["value"]))
        find = self.ledger.record_dig(request.identity, request.target, base)
        if find.found_kind == FoundKind.TREASURE:
            message = f"Found loot! +{find.total_value} gold"
        elif find.found_kind == FoundKind.TRAP:
            message = f"Trap triggered! -{find.health_lost} health"
        else:
            message = "Nothing found here."
        return ActionOutcome.applied(
            ActionType.DIG,
            message,
            {
                "foundType": str(find.found_kind),
                "totalValue": find.total_value,
                "healthLost": find.health_lost,
            },
        )

    def _apply_bury(self, request: ActionRequest, result: Dict) -> ActionOutcome:
        if not result.get("accepted"):
            raise RuleViolationError("Bury rejected")
        receipt = self.ledger.record_burial(request.identity, request.target, request.amount)
        return ActionOutcome.applied(ActionType.BURY, "Loot buried.", {"newGold": receipt.new_gold})

    # =========================================================================
    # Terminal failures
    # =========================================================================

    def _reject(self, request: ActionRequest, error: GameError) -> ActionOutcome:
        request.transition(ActionStatus.REJECTED)
        outcome = ActionOutcome.from_error(request.action_type, ActionStatus.REJECTED, error)
        if isinstance(request.identity, str) and request.identity:
            self.emit(private_event(GameEventType.ACTION_REJECTED, request.identity, outcome))
        return outcome

    def _timed_out(self, request: ActionRequest) -> ActionOutcome:
        request.transition(ActionStatus.TIMED_OUT)
        logger.warning("%s timed out; result will be dropped if it arrives", request.action_type.name)
        outcome = ActionOutcome.from_error(
            request.action_type,
            ActionStatus.TIMED_OUT,
            GameError(
                "Timed out waiting for the computation cluster. Nothing was applied here, "
                "but external effects are unknown; refresh your state before retrying.",
                ErrorKind.TIMED_OUT,
            ),
        )
        self.emit(private_event(GameEventType.ACTION_TIMED_OUT, request.identity, outcome))
        return outcome

    def _fail(self, request: ActionRequest, error: GameError) -> ActionOutcome:
        if request.status is None or not request.status.is_terminal:
            request.transition(ActionStatus.FAILED)
        outcome = ActionOutcome.from_error(request.action_type, ActionStatus.FAILED, error)
        self.emit(private_event(GameEventType.ACTION_FAILED, request.identity, outcome))
        return outcome
