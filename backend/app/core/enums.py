# =============================================================================
# Buried Treasure - Enumerations
# =============================================================================
"""
All enumeration types used throughout the game.
These define the discrete values for tiles, actions and errors.
"""

from enum import Enum, IntEnum, auto


class TileKind(IntEnum):
    """
    Contents of a tile in the hidden base map.
    Values match the wire encoding used by the computation cluster.
    """
    EMPTY = 0
    TREASURE = 1
    TRAP = 2

    def __str__(self) -> str:
        return self.name.lower()

    @property
    def symbol(self) -> str:
        """Return ASCII symbol for display"""
        symbols = {
            TileKind.EMPTY: ".",
            TileKind.TREASURE: "$",
            TileKind.TRAP: "x",
        }
        return symbols.get(self, "?")


class FoundKind(IntEnum):
    """Merged outcome of a dig. Never says which layer contributed."""
    NOTHING = 0
    TREASURE = 1
    TRAP = 2

    def __str__(self) -> str:
        return self.name.lower()


class ActionType(Enum):
    """
    Player actions.
    Each type has its own adjacency rule and precondition.
    """
    MOVE = auto()
    EXPLORE = auto()
    DIG = auto()
    BURY = auto()

    def __str__(self) -> str:
        return self.name.lower()

    @property
    def includes_self(self) -> bool:
        """Whether the player's own tile is a legal target"""
        return self != ActionType.MOVE

    @property
    def requires_amount(self) -> bool:
        return self == ActionType.BURY

    @property
    def description(self) -> str:
        """Human-readable description of the action"""
        descriptions = {
            ActionType.MOVE: "Step onto one of the 8 neighbouring tiles",
            ActionType.EXPLORE: "Reveal the contents of a tile to yourself only",
            ActionType.DIG: "Dig up a tile, checking the map and buried loot at once",
            ActionType.BURY: "Bury gold on a tile without leaving your name on it",
        }
        return descriptions.get(self, "Unknown action")


class ActionStatus(Enum):
    """
    Lifecycle of a single action.

    VALIDATED -> SUBMITTED -> AWAITING -> APPLIED
    REJECTED, TIMED_OUT and FAILED are terminal.
    """
    VALIDATED = auto()
    SUBMITTED = auto()
    AWAITING = auto()
    APPLIED = auto()
    REJECTED = auto()
    TIMED_OUT = auto()
    FAILED = auto()

    def __str__(self) -> str:
        return self.name.lower()

    @property
    def is_terminal(self) -> bool:
        return self in (
            ActionStatus.APPLIED,
            ActionStatus.REJECTED,
            ActionStatus.TIMED_OUT,
            ActionStatus.FAILED,
        )


class ErrorKind(Enum):
    """
    Error taxonomy surfaced to callers.
    """
    INVALID_INPUT = auto()        # Missing or malformed fields
    NOT_REGISTERED = auto()       # Identity unknown
    RULE_VIOLATION = auto()       # Spatial or resource precondition failed
    BUSY = auto()                 # Another action is already in flight
    COMPUTE_UNAVAILABLE = auto()  # Cluster refused the job
    TIMED_OUT = auto()            # Cluster did not answer in time
    INTERNAL = auto()             # Anything else

    def __str__(self) -> str:
        return self.name.lower()

    @property
    def retryable(self) -> bool:
        """
        Whether a client may resend the same request.

        Gateway failures are retryable, rule errors are not: resending a
        RULE_VIOLATION with the same input will fail the same way.
        """
        return self in (
            ErrorKind.BUSY,
            ErrorKind.COMPUTE_UNAVAILABLE,
            ErrorKind.TIMED_OUT,
        )

    @property
    def state_unknown(self) -> bool:
        """After a timeout the cluster may or may not have run the job"""
        return self == ErrorKind.TIMED_OUT

    @property
    def http_status(self) -> int:
        statuses = {
            ErrorKind.INVALID_INPUT: 400,
            ErrorKind.NOT_REGISTERED: 404,
            ErrorKind.RULE_VIOLATION: 400,
            ErrorKind.BUSY: 409,
            ErrorKind.COMPUTE_UNAVAILABLE: 503,
            ErrorKind.TIMED_OUT: 504,
            ErrorKind.INTERNAL: 500,
        }
        return statuses.get(self, 500)
