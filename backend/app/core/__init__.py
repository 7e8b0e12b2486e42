# =============================================================================
# Core Game Module
# =============================================================================
"""
Core game engine components including:
- Player records and the reveal ledger
- Spatial rules
- The secure computation gateway and its local stand-in
- Action processing and the engine
"""

from .enums import TileKind, FoundKind, ActionType, ActionStatus, ErrorKind
from .data_structures import (
    GameError, InvalidInputError, NotRegisteredError, RuleViolationError,
    AlreadyExploredError, InsufficientGoldError, BusyError,
    ComputeUnavailableError, RateLimitedError, TimedOutError, AlreadyExistsError,
    Coordinate, PlayerStats, PlayerRecord, BuriedLootEntry, ComputationJob,
    ActionRequest, ActionOutcome, GameConfig,
)
from .spatial import is_in_bounds, is_adjacent, chebyshev_distance, neighbours
from .player_store import PlayerRecordStore
from .treasure_map import TreasureMap, SPAWN
from .reveal_ledger import RevealLedger, LootLayer, ExploreReveal, BuryReceipt, DigFind
from .compute_gateway import (
    SecureComputationGateway, LocalComputeCluster, ComputationHandle,
    SealedPayload, seal, CLUSTER_RECIPIENT,
)
from .account_ledger import (
    AccountLedger, InMemoryAccountLedger, PlayerRegistered, ActionPerformed, PublicStats,
)
from .events import GameEvent, GameEventType
from .actions import ActionValidator, ActionProcessor
from .game_engine import GameEngine, create_game

__all__ = [
    # Enums
    "TileKind", "FoundKind", "ActionType", "ActionStatus", "ErrorKind",
    # Errors
    "GameError", "InvalidInputError", "NotRegisteredError", "RuleViolationError",
    "AlreadyExploredError", "InsufficientGoldError", "BusyError",
    "ComputeUnavailableError", "RateLimitedError", "TimedOutError", "AlreadyExistsError",
    # Data structures
    "Coordinate", "PlayerStats", "PlayerRecord", "BuriedLootEntry", "ComputationJob",
    "ActionRequest", "ActionOutcome", "GameConfig",
    # Spatial rules
    "is_in_bounds", "is_adjacent", "chebyshev_distance", "neighbours",
    # Core classes
    "PlayerRecordStore", "TreasureMap", "SPAWN",
    "RevealLedger", "LootLayer", "ExploreReveal", "BuryReceipt", "DigFind",
    "SecureComputationGateway", "LocalComputeCluster", "ComputationHandle",
    "SealedPayload", "seal", "CLUSTER_RECIPIENT",
    "AccountLedger", "InMemoryAccountLedger", "PlayerRegistered", "ActionPerformed", "PublicStats",
    "GameEvent", "GameEventType",
    "ActionValidator", "ActionProcessor",
    "GameEngine",
    # Convenience functions
    "create_game",
]
