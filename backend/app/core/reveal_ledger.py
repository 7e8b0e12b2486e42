# =============================================================================
# Buried Treasure - Reveal Ledger
# =============================================================================
"""
Enforces the disclosure rules across all players.

- A tile is disclosed to a given player at most once.
- Buried loot is kept in a layer keyed by tile only. The depositor is
  stored internally and never leaves this module.
- A dig merges the base tile and the loot layer into one result that
  does not say which layer contributed what.

Every record_* call is one logical transaction: the player's record and
the loot layer change together or not at all. Locks are always taken
player first, then tile.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .enums import FoundKind, TileKind
from .data_structures import (
    AlreadyExploredError, BuriedLootEntry, Coordinate, InsufficientGoldError,
    PlayerRecord, RuleViolationError,
)
from .locks import KeyedLocks
from .player_store import PlayerRecordStore
from .spatial import is_adjacent, is_in_bounds

logger = logging.getLogger(__name__)


# =============================================================================
# Outward results (allow-listed fields only)
# =============================================================================

@dataclass(frozen=True)
class ExploreReveal:
    tile_kind: TileKind
    value: int


@dataclass(frozen=True)
class BuryReceipt:
    new_gold: int


@dataclass(frozen=True)
class DigFind:
    found_kind: FoundKind
    total_value: int
    health_lost: int


# =============================================================================
# Loot Layer
# =============================================================================

class LootLayer:
    """
    Player-placed loot, keyed by tile.

    Several burials on one tile accumulate; a dig takes all of it.
    """

    def __init__(self):
        self._entries: Dict[Coordinate, List[BuriedLootEntry]] = {}
        self._locks = KeyedLocks()

    def lock_for(self, coord: Coordinate):
        return self._locks.hold(coord)

    def deposit(self, entry: BuriedLootEntry):
        with self._locks.hold(entry.location):
            self._entries.setdefault(entry.location, []).append(entry)

    def amount_at(self, coord: Coordinate) -> int:
        with self._locks.hold(coord):
            return sum(e.amount for e in self._entries.get(coord, ()))

    def consume(self, coord: Coordinate) -> int:
        """Remove everything buried at coord and return the total"""
        with self._locks.hold(coord):
            entries = self._entries.pop(coord, [])
            return sum(e.amount for e in entries)

    def occupied_tiles(self) -> int:
        return len(self._entries)


# =============================================================================
# Reveal Ledger
# =============================================================================

class RevealLedger:
    """
    Owned and mutated only by the action processor.
    """

    def __init__(self, store: PlayerRecordStore, loot: Optional[LootLayer] = None,
                 grid_size: int = 10):
        self.store = store
        self.loot = loot or LootLayer()
        self.grid_size = grid_size

    def _check_target(self, record: PlayerRecord, coord: Coordinate):
        if not is_in_bounds(coord, self.grid_size):
            raise RuleViolationError("Out of bounds")
        if not is_adjacent(record.position, coord, include_self=True):
            raise RuleViolationError("Not adjacent")

    # =========================================================================
    # Explore
    # =========================================================================

    def record_exploration(self, identity: str, coord: Coordinate,
                           tile_kind: TileKind, value: int) -> ExploreReveal:
        """
        Disclose a tile to one player and apply its effect.

        Raises:
            AlreadyExploredError: if the player already explored coord
        """
        def apply(record: PlayerRecord) -> ExploreReveal:
            if record.has_explored(coord):
                raise AlreadyExploredError("Already explored")
            record.explored_tiles.add(coord)
            record.stats.tiles_explored += 1
            if tile_kind == TileKind.TREASURE:
                record.gold += value
                record.stats.treasures_found += 1
            elif tile_kind == TileKind.TRAP:
                record.health = max(0, record.health - value)
                record.stats.traps_triggered += 1
            return ExploreReveal(tile_kind=tile_kind, value=value)

        return self.store.mutate(identity, apply)

    # =========================================================================
    # Bury
    # =========================================================================

    def record_burial(self, identity: str, coord: Coordinate, amount: int) -> BuryReceipt:
        """
        Move gold from the player into the loot layer.

        The receipt carries the new balance and nothing else.

        Raises:
            InsufficientGoldError: unless 0 < amount <= gold
            RuleViolationError: if coord is not adjacent or off the map
        """
        def apply(record: PlayerRecord) -> BuryReceipt:
            if amount <= 0 or amount > record.gold:
                raise InsufficientGoldError("Insufficient gold")
            self._check_target(record, coord)
            record.gold -= amount
            record.stats.loot_buried += amount
            record.buried_tiles.add(coord)
            # Last step: nothing after this can fail
            self.loot.deposit(BuriedLootEntry(location=coord, amount=amount, depositor=identity))
            return BuryReceipt(new_gold=record.gold)

        receipt = self.store.mutate(identity, apply)
        logger.debug("Loot layer updated")
        return receipt

    # =========================================================================
    # Dig
    # =========================================================================

    @staticmethod
    def combine_layers(base: Tuple[TileKind, int], loot_amount: int) -> DigFind:
        """
        Merge a base tile and a loot amount into a single find.

        Treasure takes precedence over a trap in the reported kind; both
        effects are still carried.
        """
        kind, value = base
        total_value = loot_amount
        health_lost = 0
        found = FoundKind.TREASURE if loot_amount > 0 else FoundKind.NOTHING

        if kind == TileKind.TREASURE:
            total_value += value
            found = FoundKind.TREASURE
        elif kind == TileKind.TRAP:
            health_lost = value
            if found == FoundKind.NOTHING:
                found = FoundKind.TRAP

        return DigFind(found_kind=found, total_value=total_value, health_lost=health_lost)

    def record_dig(self, identity: str, coord: Coordinate,
                   base: Tuple[TileKind, int]) -> DigFind:
        """
        Dig up a tile: base layer and loot layer in one lookup.

        The base tile only contributes the first time it is disclosed to
        this player. Loot found here is consumed, so it can be dug up at
        most once by anyone.
        """
        def apply(record: PlayerRecord) -> DigFind:
            self._check_target(record, coord)
            first_disclosure = not record.has_explored(coord)
            with self.loot.lock_for(coord):
                loot_amount = self.loot.amount_at(coord)
                find = self.combine_layers(
                    base if first_disclosure else (TileKind.EMPTY, 0),
                    loot_amount,
                )

                record.gold += find.total_value
                record.stats.loot_dug_up += find.total_value
                if find.found_kind == FoundKind.TREASURE:
                    record.stats.treasures_found += 1
                if find.health_lost > 0:
                    record.health = max(0, record.health - find.health_lost)
                    record.stats.traps_triggered += 1
                if first_disclosure:
                    record.explored_tiles.add(coord)
                    record.stats.tiles_explored += 1

                if loot_amount > 0:
                    self.loot.consume(coord)
            return find

        return self.store.mutate(identity, apply)
