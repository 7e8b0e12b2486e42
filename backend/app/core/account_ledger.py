# =============================================================================
# Buried Treasure - Account Ledger
# =============================================================================
"""
Public, append-only record of non-secret facts.

The engine only needs "write a fact, get back a commit handle". What is
committed is deliberately narrow: registrations, that an action of some
kind happened, and the public counters. Positions, gold, health,
coordinates and amounts are never committed, and a bury is committed
without any identity.
"""

import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Union

from .enums import ActionType
from .data_structures import PlayerRecord

logger = logging.getLogger(__name__)


CommitHandle = str


# =============================================================================
# Facts
# =============================================================================

@dataclass(frozen=True)
class PlayerRegistered:
    identity: str

    @property
    def kind(self) -> str:
        return "register"


@dataclass(frozen=True)
class ActionPerformed:
    """That an action happened. identity is None for BURY."""
    action_type: ActionType
    identity: Optional[str] = None

    @property
    def kind(self) -> str:
        return self.action_type.name.lower()

    @classmethod
    def for_action(cls, action_type: ActionType, identity: str) -> "ActionPerformed":
        if action_type == ActionType.BURY:
            return cls(action_type=action_type)
        return cls(action_type=action_type, identity=identity)


@dataclass(frozen=True)
class PublicStats:
    identity: str
    tiles_explored: int
    treasures_found: int
    traps_triggered: int

    @property
    def kind(self) -> str:
        return "stats"

    @classmethod
    def from_record(cls, record: PlayerRecord) -> "PublicStats":
        return cls(
            identity=record.identity,
            tiles_explored=record.stats.tiles_explored,
            treasures_found=record.stats.treasures_found,
            traps_triggered=record.stats.traps_triggered,
        )


Fact = Union[PlayerRegistered, ActionPerformed, PublicStats]


# =============================================================================
# Ledger
# =============================================================================

class AccountLedger(ABC):
    """Interface to the persistent, tamper-evident account layer"""

    @abstractmethod
    def commit(self, fact: Fact) -> CommitHandle:
        """Write one fact and return its commit handle"""


class InMemoryAccountLedger(AccountLedger):
    """
    Append-only list of committed facts.

    Handles look like "<kind>_<millis>_<identity prefix>"; facts without
    an identity get a random suffix instead.
    """

    def __init__(self):
        self._facts: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def commit(self, fact: Fact) -> CommitHandle:
        millis = int(time.time() * 1000)
        identity = getattr(fact, "identity", None)
        suffix = identity[:8] if identity else secrets.token_hex(4)
        handle = f"{fact.kind}_{millis}_{suffix}"

        entry = {"handle": handle, "kind": fact.kind}
        entry.update({k: v for k, v in asdict(fact).items() if v is not None})
        if isinstance(fact, ActionPerformed):
            entry["action_type"] = fact.action_type.name
        with self._lock:
            self._facts.append(entry)
        logger.debug("Committed %s fact", fact.kind)
        return handle

    @property
    def facts(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(f) for f in self._facts]

    def __len__(self) -> int:
        return len(self._facts)
