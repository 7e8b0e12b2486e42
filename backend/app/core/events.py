# =============================================================================
# Buried Treasure - Game Events
# =============================================================================
"""
Events emitted by the engine for logging, UI updates and the public
account ledger.

Each event has an audience: one identity (a private disclosure) or None
(public). Payloads are built from allow-lists; nothing is copied from
internal records wholesale.
"""

import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional

from .enums import ActionType
from .data_structures import ActionOutcome


class GameEventType(Enum):
    """Types of events that can be emitted by the game engine"""
    GAME_CREATED = auto()
    PLAYER_REGISTERED = auto()
    ACTION_SUBMITTED = auto()
    ACTION_APPLIED = auto()
    ACTION_REJECTED = auto()
    ACTION_TIMED_OUT = auto()
    ACTION_FAILED = auto()
    GAME_CLOSED = auto()


@dataclass
class GameEvent:
    """Represents a game event for logging and UI updates"""
    event_type: GameEventType
    audience: Optional[str] = None  # None means public
    player: Optional[str] = None
    action_type: Optional[ActionType] = None
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def is_public(self) -> bool:
        return self.audience is None

    def visible_to(self, identity: Optional[str]) -> bool:
        return self.audience is None or self.audience == identity

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "type": self.event_type.name,
            "action": self.action_type.name if self.action_type else None,
            "message": self.message,
            "data": dict(self.data),
            "timestamp": self.timestamp,
        }
        if self.player is not None:
            result["player"] = self.player
        return result


# =============================================================================
# Allow-lists
# =============================================================================

# Outcome fields a player may see about their own action
PRIVATE_FIELDS = {
    ActionType.MOVE: ("newX", "newY"),
    ActionType.EXPLORE: ("tileType", "value"),
    ActionType.DIG: ("foundType", "totalValue", "healthLost"),
    ActionType.BURY: ("newGold",),
}


def private_event(event_type: GameEventType, identity: str,
                  outcome: ActionOutcome) -> GameEvent:
    """Event addressed to the acting player only"""
    allowed = PRIVATE_FIELDS.get(outcome.action_type, ())
    data = {k: outcome.data[k] for k in allowed if k in outcome.data}
    data["status"] = outcome.status.name
    if outcome.error_kind is not None:
        data["error"] = outcome.error_kind.name
        data["retryable"] = outcome.error_kind.retryable
    return GameEvent(
        event_type=event_type,
        audience=identity,
        player=identity,
        action_type=outcome.action_type,
        message=outcome.message,
        data=data,
    )


def public_event(event_type: GameEventType, identity: str,
                 action_type: ActionType) -> GameEvent:
    """
    Event anyone may see: that an action happened, never its result.

    A bury is published without any player, so burials by different
    players are indistinguishable.
    """
    player = None if action_type == ActionType.BURY else identity
    return GameEvent(
        event_type=event_type,
        audience=None,
        player=player,
        action_type=action_type,
        message=f"{action_type.name.capitalize()} performed",
    )
