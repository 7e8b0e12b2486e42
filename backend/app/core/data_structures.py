# =============================================================================
# Buried Treasure - Core Data Structures
# =============================================================================
"""
Core data structures for representing game elements.
These are the fundamental building blocks of the authoritative state.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple, Any
import os
import time
import uuid

from .enums import ActionType, ActionStatus, ErrorKind


# =============================================================================
# Errors
# =============================================================================

class GameError(Exception):
    """
    Base error for every failure the engine reports.

    Carries an ErrorKind and a short human-readable reason.
    """
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, reason: str, kind: Optional[ErrorKind] = None):
        super().__init__(reason)
        self.reason = reason
        if kind is not None:
            self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.name,
            "reason": self.reason,
            "retryable": self.retryable,
        }


class InvalidInputError(GameError):
    kind = ErrorKind.INVALID_INPUT


class NotRegisteredError(GameError):
    kind = ErrorKind.NOT_REGISTERED


class RuleViolationError(GameError):
    kind = ErrorKind.RULE_VIOLATION


class AlreadyExploredError(RuleViolationError):
    """Tile is already in the player's explored set"""


class InsufficientGoldError(RuleViolationError):
    """Bury amount is not in (0, gold]"""


class BusyError(GameError):
    kind = ErrorKind.BUSY


class ComputeUnavailableError(GameError):
    kind = ErrorKind.COMPUTE_UNAVAILABLE


class RateLimitedError(ComputeUnavailableError):
    """Cluster has too much pending work"""


class TimedOutError(GameError):
    kind = ErrorKind.TIMED_OUT


class AlreadyExistsError(GameError):
    """Store already holds a record for this identity"""
    kind = ErrorKind.INTERNAL


# =============================================================================
# Coordinate
# =============================================================================

@dataclass(frozen=True, order=True)
class Coordinate:
    """A tile on the square grid. x is the column, y the row."""
    x: int
    y: int

    @property
    def key(self) -> str:
        """Compact "x,y" form used by clients"""
        return f"{self.x},{self.y}"

    def __str__(self) -> str:
        return f"({self.x}, {self.y})"


# =============================================================================
# Player Record
# =============================================================================

@dataclass
class PlayerStats:
    """Monotone counters kept per player"""
    tiles_explored: int = 0
    treasures_found: int = 0
    traps_triggered: int = 0
    loot_buried: int = 0
    loot_dug_up: int = 0

    def clone(self) -> "PlayerStats":
        return PlayerStats(
            tiles_explored=self.tiles_explored,
            treasures_found=self.treasures_found,
            traps_triggered=self.traps_triggered,
            loot_buried=self.loot_buried,
            loot_dug_up=self.loot_dug_up,
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "tilesExplored": self.tiles_explored,
            "treasuresFound": self.treasures_found,
            "trapsTriggered": self.traps_triggered,
            "lootBuried": self.loot_buried,
            "lootDugUp": self.loot_dug_up,
        }


@dataclass
class PlayerRecord:
    """
    Authoritative state of one registered identity.

    Attributes:
        identity: Opaque principal (a wallet address in practice)
        position: Current tile, always inside the grid
        gold: Never negative
        health: Clamped to [0, max_health]
        explored_tiles: Tiles disclosed to this player; only grows
        buried_tiles: Tiles where this player buried loot (own view only)
        stats: Monotone counters
    """
    identity: str
    position: Coordinate = field(default_factory=lambda: Coordinate(0, 0))
    gold: int = 20
    health: int = 100
    max_health: int = 100
    explored_tiles: Set[Coordinate] = field(default_factory=set)
    buried_tiles: Set[Coordinate] = field(default_factory=set)
    stats: PlayerStats = field(default_factory=PlayerStats)
    created_at: float = field(default_factory=time.time)

    def __post_init__(self):
        self.clamp()

    def clamp(self):
        """Re-establish numeric invariants after a mutation"""
        self.gold = max(0, int(self.gold))
        self.health = max(0, min(self.max_health, int(self.health)))

    @property
    def is_alive(self) -> bool:
        return self.health > 0

    def has_explored(self, coord: Coordinate) -> bool:
        return coord in self.explored_tiles

    def clone(self) -> "PlayerRecord":
        """Create a deep copy of this record"""
        return PlayerRecord(
            identity=self.identity,
            position=self.position,
            gold=self.gold,
            health=self.health,
            max_health=self.max_health,
            explored_tiles=set(self.explored_tiles),
            buried_tiles=set(self.buried_tiles),
            stats=self.stats.clone(),
            created_at=self.created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Full view of the record, for its owner only"""
        return {
            "x": self.position.x,
            "y": self.position.y,
            "gold": self.gold,
            "health": self.health,
            "maxHealth": self.max_health,
            "explored": sorted(c.key for c in self.explored_tiles),
            "buried": sorted(c.key for c in self.buried_tiles),
            "stats": self.stats.to_dict(),
        }


# =============================================================================
# Buried Loot
# =============================================================================

@dataclass(frozen=True)
class BuriedLootEntry:
    """
    Internal loot-layer record.

    The depositor stays inside the ledger. Nothing outward-facing is ever
    built from this object directly.
    """
    location: Coordinate
    amount: int
    depositor: str = field(repr=False)


# =============================================================================
# Computation Job
# =============================================================================

@dataclass
class ComputationJob:
    """
    One unit of work handed to the secure computation boundary.
    Lives only for the duration of a single action.
    """
    kind: ActionType
    requester: str
    encrypted_input: Any
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    submitted_at: float = field(default_factory=time.monotonic)


# =============================================================================
# Action Request
# =============================================================================

# Legal transitions of the per-action state machine
_TRANSITIONS: Dict[ActionStatus, Tuple[ActionStatus, ...]] = {
    ActionStatus.VALIDATED: (ActionStatus.SUBMITTED, ActionStatus.REJECTED, ActionStatus.FAILED),
    ActionStatus.SUBMITTED: (ActionStatus.AWAITING, ActionStatus.FAILED),
    ActionStatus.AWAITING: (
        ActionStatus.APPLIED,
        ActionStatus.REJECTED,
        ActionStatus.TIMED_OUT,
        ActionStatus.FAILED,
    ),
}


@dataclass
class ActionRequest:
    """
    A single player intent and its lifecycle.
    """
    action_type: ActionType
    identity: str
    target: Coordinate
    amount: Optional[int] = None

    # Filled in by the processor
    status: Optional[ActionStatus] = None
    sequence: int = 0
    job_id: Optional[str] = None
    history: List[ActionStatus] = field(default_factory=list)

    def transition(self, new_status: ActionStatus):
        """Move to the next lifecycle state, refusing illegal jumps"""
        if self.status is None:
            if new_status not in (ActionStatus.VALIDATED, ActionStatus.REJECTED, ActionStatus.FAILED):
                raise GameError(f"Action cannot start in state {new_status.name}")
        elif new_status not in _TRANSITIONS.get(self.status, ()):
            raise GameError(
                f"Illegal action transition {self.status.name} -> {new_status.name}"
            )
        self.status = new_status
        self.history.append(new_status)

    def __str__(self) -> str:
        # Bury target and amount never appear in logs
        if self.action_type == ActionType.BURY:
            return self.action_type.name
        return f"{self.action_type.name} -> {self.target}"


# =============================================================================
# Action Outcome
# =============================================================================

@dataclass
class ActionOutcome:
    """
    Result of one action as returned to the caller.

    `data` is always built from an allow-list of fields for the action
    type; it never carries internal records.
    """
    action_type: ActionType
    status: ActionStatus
    success: bool
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None

    @property
    def retryable(self) -> bool:
        return self.error_kind is not None and self.error_kind.retryable

    @classmethod
    def applied(cls, action_type: ActionType, message: str, data: Dict[str, Any]) -> "ActionOutcome":
        return cls(
            action_type=action_type,
            status=ActionStatus.APPLIED,
            success=True,
            message=message,
            data=data,
        )

    @classmethod
    def from_error(cls, action_type: ActionType, status: ActionStatus, error: GameError) -> "ActionOutcome":
        return cls(
            action_type=action_type,
            status=status,
            success=False,
            message=error.reason,
            error_kind=error.kind,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        result = {
            "action": self.action_type.name,
            "status": self.status.name,
            "success": self.success,
            "message": self.message,
        }
        result.update(self.data)
        if self.error_kind is not None:
            result["error"] = {
                "kind": self.error_kind.name,
                "reason": self.message,
                "retryable": self.error_kind.retryable,
            }
        return result


# =============================================================================
# Game Configuration
# =============================================================================

@dataclass
class GameConfig:
    """
    Configuration settings for a game instance.
    """
    # Board
    grid_size: int = 10
    treasure_count: int = 15
    trap_count: int = 10
    treasure_value_range: Tuple[int, int] = (5, 50)
    trap_value_range: Tuple[int, int] = (5, 30)
    map_seed: Optional[int] = None

    # Players
    starting_gold: int = 20
    starting_health: int = 100
    max_health: int = 100
    auto_register_on_query: bool = True

    # Secure computation boundary
    compute_latency: float = 1.2  # seconds per round trip
    action_timeout: float = 30.0
    max_pending_jobs: int = 256

    @classmethod
    def from_env(cls) -> "GameConfig":
        """Build a config from TREASURE_* environment variables"""
        config = cls()
        seed = os.getenv("TREASURE_MAP_SEED")
        if seed:
            config.map_seed = int(seed)
        latency = os.getenv("TREASURE_COMPUTE_LATENCY")
        if latency:
            config.compute_latency = float(latency)
        timeout = os.getenv("TREASURE_ACTION_TIMEOUT")
        if timeout:
            config.action_timeout = float(timeout)
        pending = os.getenv("TREASURE_MAX_PENDING_JOBS")
        if pending:
            config.max_pending_jobs = int(pending)
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "grid_size": self.grid_size,
            "treasure_count": self.treasure_count,
            "trap_count": self.trap_count,
            "treasure_value_range": list(self.treasure_value_range),
            "trap_value_range": list(self.trap_value_range),
            "map_seed": self.map_seed,
            "starting_gold": self.starting_gold,
            "starting_health": self.starting_health,
            "max_health": self.max_health,
            "auto_register_on_query": self.auto_register_on_query,
            "compute_latency": self.compute_latency,
            "action_timeout": self.action_timeout,
            "max_pending_jobs": self.max_pending_jobs,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GameConfig":
        data = dict(data)
        for key in ("treasure_value_range", "trap_value_range"):
            if key in data:
                data[key] = tuple(data[key])
        return cls(**data)
