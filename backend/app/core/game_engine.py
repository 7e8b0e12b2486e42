# =============================================================================
# Buried Treasure - Game Engine
# =============================================================================
"""
Main game engine that wires the components of one game together.
Registers players, routes actions to the processor, keeps statistics and
emits events for the UI, the websocket relay and the account ledger.
"""

import logging
import time
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from .enums import ActionStatus, ActionType, TileKind
from .data_structures import (
    ActionOutcome, ActionRequest, Coordinate, GameConfig,
    InvalidInputError, NotRegisteredError, PlayerRecord,
)
from .account_ledger import (
    AccountLedger, ActionPerformed, InMemoryAccountLedger, PlayerRegistered, PublicStats,
)
from .actions import ActionProcessor
from .compute_gateway import LocalComputeCluster, SecureComputationGateway
from .events import GameEvent, GameEventType
from .player_store import PlayerRecordStore
from .reveal_ledger import RevealLedger
from .treasure_map import TreasureMap

logger = logging.getLogger(__name__)


EventCallback = Callable[[GameEvent], None]


class GameEngine:
    """
    One game instance.

    Responsibilities:
    - Register players and answer state queries
    - Run move/explore/dig/bury through the action processor
    - Track public metadata and aggregate statistics
    - Emit events for UI/logging and commit public facts

    Example usage:
        engine = create_game(seed=42)
        record, tx = engine.register(wallet)
        outcome = await engine.explore(wallet, 1, 0)
        print(outcome.message)
    """

    def __init__(self, config: Optional[GameConfig] = None,
                 tile_map: Optional[TreasureMap] = None,
                 gateway: Optional[SecureComputationGateway] = None,
                 account_ledger: Optional[AccountLedger] = None):
        """Initialize the game engine with optional custom collaborators"""
        self.config = config or GameConfig()
        self.game_id = uuid.uuid4().hex[:12]
        self.created_at = time.time()

        # The engine itself never reads the map; only the cluster does
        if gateway is None:
            gateway = LocalComputeCluster.from_config(self.config, tile_map)
        self.gateway = gateway
        self.account_ledger = account_ledger if account_ledger is not None else InMemoryAccountLedger()

        self.store = PlayerRecordStore(self.config)
        self.ledger = RevealLedger(self.store, grid_size=self.config.grid_size)
        self.processor = ActionProcessor(
            self.config, self.store, self.ledger, self.gateway, emit=self._emit_event
        )
        self._registrations: Dict[str, str] = {}

        # Event system; None subscribes to every event type
        self.event_listeners: Dict[Optional[GameEventType], List[EventCallback]] = {}
        self.event_history: List[GameEvent] = []
        self.add_event_listener(GameEventType.ACTION_APPLIED, self._commit_public_fact)

        # Game statistics
        self.stats = {
            "total_actions": 0,
            "applied": 0,
            "rejected": 0,
            "timed_out": 0,
            "failed": 0,
            "moves": 0,
            "explorations": 0,
            "digs": 0,
            "burials": 0,
        }

        logger.info("Game %s created (%dx%d)", self.game_id,
                    self.config.grid_size, self.config.grid_size)
        self._emit_event(GameEvent(
            event_type=GameEventType.GAME_CREATED,
            message=f"Game {self.game_id} created",
            data={"gameId": self.game_id},
        ))

    # =========================================================================
    # Public metadata
    # =========================================================================

    @property
    def is_active(self) -> bool:
        return self.processor.active

    @property
    def player_count(self) -> int:
        return len(self.store)

    def close(self):
        """Stop accepting actions. State queries keep working."""
        if not self.processor.active:
            return
        self.processor.active = False
        logger.info("Game %s closed", self.game_id)
        self._emit_event(GameEvent(
            event_type=GameEventType.GAME_CLOSED,
            message="Game closed",
        ))

    # =========================================================================
    # Players
    # =========================================================================

    @staticmethod
    def _check_identity(identity: str):
        if not isinstance(identity, str) or not identity.strip():
            raise InvalidInputError("Wallet address required")

    def register(self, identity: str) -> Tuple[PlayerRecord, str]:
        """
        Register an identity, or return the existing record if it is
        already registered.

        Returns:
            (record, commit handle of the registration)
        """
        self._check_identity(identity)
        with self.store.lock_for(identity):
            if identity in self._registrations:
                return self.store.get(identity), self._registrations[identity]
            # Nothing is stored unless the ledger accepted the registration
            tx = self.account_ledger.commit(PlayerRegistered(identity))
            record = self.store.create(identity)
            self._registrations[identity] = tx

        self._emit_event(GameEvent(
            event_type=GameEventType.PLAYER_REGISTERED,
            player=identity,
            message="Player joined",
        ))
        return record, tx

    def is_registered(self, identity: str) -> bool:
        return identity in self.store

    def get_state(self, identity: str) -> PlayerRecord:
        """
        Full current record for an identity.

        Unknown identities are registered on the fly unless
        auto_register_on_query is off.
        """
        self._check_identity(identity)
        record = self.store.get(identity)
        if record is not None:
            return record
        if not self.config.auto_register_on_query:
            raise NotRegisteredError("Player not registered")
        record, _ = self.register(identity)
        return record

    def get_valid_targets(self, identity: str, action_type: ActionType) -> List[Coordinate]:
        record = self.store.get(identity)
        if record is None:
            return []
        return self.processor.validator.get_valid_targets(record, action_type)

    def is_busy(self, identity: str) -> bool:
        return self.processor.is_busy(identity)

    # =========================================================================
    # Actions
    # =========================================================================

    async def perform(self, request: ActionRequest) -> ActionOutcome:
        """Run one action to completion and record it in the stats"""
        outcome = await self.processor.process(request)
        self._update_stats(request, outcome)
        return outcome

    async def move(self, identity: str, x: int, y: int) -> ActionOutcome:
        return await self.perform(ActionRequest(ActionType.MOVE, identity, Coordinate(x, y)))

    async def explore(self, identity: str, x: int, y: int) -> ActionOutcome:
        return await self.perform(ActionRequest(ActionType.EXPLORE, identity, Coordinate(x, y)))

    async def dig(self, identity: str, x: int, y: int) -> ActionOutcome:
        return await self.perform(ActionRequest(ActionType.DIG, identity, Coordinate(x, y)))

    async def bury(self, identity: str, x: int, y: int, amount: int) -> ActionOutcome:
        return await self.perform(
            ActionRequest(ActionType.BURY, identity, Coordinate(x, y), amount=amount)
        )

    # =========================================================================
    # Event System
    # =========================================================================

    def add_event_listener(self, event_type: Optional[GameEventType], callback: EventCallback):
        """Register a callback for an event type (None for all events)"""
        self.event_listeners.setdefault(event_type, []).append(callback)

    def remove_event_listener(self, event_type: Optional[GameEventType], callback: EventCallback):
        """Remove a previously registered callback"""
        listeners = self.event_listeners.get(event_type, [])
        if callback in listeners:
            listeners.remove(callback)

    def _emit_event(self, event: GameEvent):
        """Emit an event to all registered listeners"""
        self.event_history.append(event)

        listeners = list(self.event_listeners.get(event.event_type, []))
        listeners.extend(self.event_listeners.get(None, []))
        for callback in listeners:
            try:
                callback(event)
            except Exception:
                logger.exception("Event listener error on %s", event.event_type.name)

    def get_event_history(self,
                          identity: Optional[str] = None,
                          event_type: Optional[GameEventType] = None,
                          limit: Optional[int] = None) -> List[GameEvent]:
        """
        Events visible to an identity: its own private events plus all
        public ones. Without an identity only public events are returned.
        """
        events = [e for e in self.event_history if e.visible_to(identity)]

        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]

        if limit is not None:
            events = events[-limit:]

        return events

    def _commit_public_fact(self, event: GameEvent):
        """Mirror applied actions into the account ledger"""
        if not event.is_public or event.action_type is None:
            return
        self.account_ledger.commit(ActionPerformed.for_action(event.action_type, event.player))
        if event.action_type in (ActionType.EXPLORE, ActionType.DIG) and event.player:
            record = self.store.get(event.player)
            if record is not None:
                self.account_ledger.commit(PublicStats.from_record(record))

    # =========================================================================
    # Statistics
    # =========================================================================

    def _update_stats(self, request: ActionRequest, outcome: ActionOutcome):
        """Update statistics after an action"""
        self.stats["total_actions"] += 1

        status_keys = {
            ActionStatus.APPLIED: "applied",
            ActionStatus.REJECTED: "rejected",
            ActionStatus.TIMED_OUT: "timed_out",
            ActionStatus.FAILED: "failed",
        }
        self.stats[status_keys[outcome.status]] += 1

        if outcome.success:
            type_keys = {
                ActionType.MOVE: "moves",
                ActionType.EXPLORE: "explorations",
                ActionType.DIG: "digs",
                ActionType.BURY: "burials",
            }
            self.stats[type_keys[request.action_type]] += 1

    def get_stats(self) -> dict:
        """Get current game statistics"""
        return dict(self.stats)

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict:
        """Public metadata only; no player state and no map"""
        return {
            "gameId": self.game_id,
            "createdAt": self.created_at,
            "isActive": self.is_active,
            "playerCount": self.player_count,
            "gridSize": self.config.grid_size,
            "stats": self.get_stats(),
        }


# =============================================================================
# Convenience Functions
# =============================================================================

def create_game(
    config: Optional[GameConfig] = None,
    seed: Optional[int] = None,
    layout: Optional[Dict[Coordinate, Tuple[TileKind, int]]] = None,
) -> GameEngine:
    """
    Create a new game with a local computation cluster.

    Args:
        config: Game settings, defaults to GameConfig()
        seed: Map seed, overrides config.map_seed
        layout: Explicit tiles instead of a generated map

    Returns:
        Initialized GameEngine
    """
    config = config or GameConfig()
    if layout is not None:
        tile_map = TreasureMap.from_layout(layout, config.grid_size)
    else:
        tile_map = TreasureMap.generate(config, seed)
    return GameEngine(config, tile_map=tile_map)
