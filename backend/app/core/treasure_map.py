# =============================================================================
# Buried Treasure - Hidden Map
# =============================================================================
"""
The base tile layer.

The map is laid out once, when the game is created, and is never
re-drawn. Explore and dig only reveal what is already there. Only the
secure computation boundary reads it.
"""

from typing import Dict, Optional, Tuple

import numpy as np

from .enums import TileKind
from .data_structures import Coordinate, GameConfig


SPAWN = Coordinate(0, 0)


class TreasureMap:
    """
    N x N grid of tiles stored as two numpy arrays indexed [y, x].

    Attributes:
        kinds: uint8 array of TileKind values
        values: uint16 array of treasure amounts or trap damage
    """

    def __init__(self, kinds: np.ndarray, values: np.ndarray):
        if kinds.shape != values.shape or kinds.ndim != 2 or kinds.shape[0] != kinds.shape[1]:
            raise ValueError("Map layers must be square arrays of equal shape")
        self.kinds = kinds.astype(np.uint8)
        self.values = values.astype(np.uint16)

    @property
    def size(self) -> int:
        return int(self.kinds.shape[0])

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def generate(cls, config: Optional[GameConfig] = None, seed: Optional[int] = None) -> "TreasureMap":
        """
        Lay out a new map.

        Treasures and traps go on distinct tiles; the spawn tile (0, 0)
        is always empty.

        Args:
            config: Board settings (size, counts, value ranges)
            seed: Random seed for reproducibility, defaults to config.map_seed
        """
        config = config or GameConfig()
        n = config.grid_size
        placed = config.treasure_count + config.trap_count
        if placed > n * n - 1:
            raise ValueError(f"Cannot place {placed} tiles on a {n}x{n} map")

        rng = np.random.default_rng(seed if seed is not None else config.map_seed)
        kinds = np.zeros((n, n), dtype=np.uint8)
        values = np.zeros((n, n), dtype=np.uint16)

        # Flat index 0 is the spawn tile
        picks = rng.choice(np.arange(1, n * n), size=placed, replace=False)
        treasure_idx = picks[:config.treasure_count]
        trap_idx = picks[config.treasure_count:]

        lo, hi = config.treasure_value_range
        ys, xs = np.divmod(treasure_idx, n)
        kinds[ys, xs] = TileKind.TREASURE
        values[ys, xs] = rng.integers(lo, hi + 1, size=len(treasure_idx))

        lo, hi = config.trap_value_range
        ys, xs = np.divmod(trap_idx, n)
        kinds[ys, xs] = TileKind.TRAP
        values[ys, xs] = rng.integers(lo, hi + 1, size=len(trap_idx))

        return cls(kinds, values)

    @classmethod
    def from_layout(cls, layout: Dict[Coordinate, Tuple[TileKind, int]],
                    grid_size: int = 10) -> "TreasureMap":
        """Build a map from explicit tiles; everything else is empty"""
        kinds = np.zeros((grid_size, grid_size), dtype=np.uint8)
        values = np.zeros((grid_size, grid_size), dtype=np.uint16)
        for coord, (kind, value) in layout.items():
            kinds[coord.y, coord.x] = kind
            values[coord.y, coord.x] = value
        return cls(kinds, values)

    @classmethod
    def empty(cls, grid_size: int = 10) -> "TreasureMap":
        return cls.from_layout({}, grid_size)

    # =========================================================================
    # Queries
    # =========================================================================

    def tile_at(self, coord: Coordinate) -> Tuple[TileKind, int]:
        """Return (kind, value) of a single tile"""
        if not (0 <= coord.x < self.size and 0 <= coord.y < self.size):
            raise IndexError(f"Tile {coord} is off the map")
        return TileKind(int(self.kinds[coord.y, coord.x])), int(self.values[coord.y, coord.x])

    def count(self, kind: TileKind) -> int:
        return int(np.count_nonzero(self.kinds == kind))
