# =============================================================================
# Buried Treasure - Player Record Store
# =============================================================================
"""
Durable map from identity to authoritative PlayerRecord.

Every write is a single read-modify-write under the identity's own lock.
Mutations run on a private copy which is swapped in only after the
numeric fields are re-clamped, so a concurrent reader sees either the
old record or the new one, never something in between.
"""

import logging
import threading
from typing import Callable, Dict, Optional, TypeVar

from .data_structures import (
    AlreadyExistsError, Coordinate, GameConfig, NotRegisteredError, PlayerRecord
)
from .locks import KeyedLocks

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PlayerRecordStore:
    """
    In-process record store.

    Records are never deleted. A real deployment would persist them
    outside process memory behind the same interface.
    """

    def __init__(self, config: Optional[GameConfig] = None):
        self.config = config or GameConfig()
        self._records: Dict[str, PlayerRecord] = {}
        self._create_lock = threading.Lock()
        self._locks = KeyedLocks()

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, identity: str) -> Optional[PlayerRecord]:
        """Return a snapshot of the record, or None if unknown"""
        if identity not in self._records:
            return None
        with self._locks.hold(identity):
            record = self._records.get(identity)
            return record.clone() if record is not None else None

    def __contains__(self, identity: str) -> bool:
        return identity in self._records

    def __len__(self) -> int:
        return len(self._records)

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, identity: str) -> PlayerRecord:
        """
        Create the initial record for an identity.

        Raises:
            AlreadyExistsError: if the identity already has a record
        """
        with self._create_lock:
            if identity in self._records:
                raise AlreadyExistsError(f"Player {identity[:8]} already registered")
            record = PlayerRecord(
                identity=identity,
                position=Coordinate(0, 0),
                gold=self.config.starting_gold,
                health=self.config.starting_health,
                max_health=self.config.max_health,
            )
            self._records[identity] = record
        logger.info("Created player record for %s...", identity[:8])
        return record.clone()

    def mutate(self, identity: str, fn: Callable[[PlayerRecord], T]) -> T:
        """
        Apply fn to the record as one atomic read-modify-write.

        fn receives a working copy. If it raises, nothing is written.

        Returns:
            Whatever fn returns
        """
        with self._locks.hold(identity):
            current = self._records.get(identity)
            if current is None:
                raise NotRegisteredError("Player not registered")
            working = current.clone()
            result = fn(working)
            working.clamp()
            self._records[identity] = working
            return result

    def lock_for(self, identity: str):
        """Context manager holding the identity's lock (re-entrant)"""
        return self._locks.hold(identity)
