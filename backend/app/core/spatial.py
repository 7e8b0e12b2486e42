# =============================================================================
# Buried Treasure - Spatial Rules
# =============================================================================
"""
Pure grid checks: bounds and Chebyshev adjacency (8-neighbourhood,
diagonals allowed).
"""

from typing import Iterator

from .data_structures import Coordinate


DEFAULT_GRID_SIZE = 10


def is_in_bounds(p: Coordinate, grid_size: int = DEFAULT_GRID_SIZE) -> bool:
    """True iff 0 <= x < N and 0 <= y < N"""
    return 0 <= p.x < grid_size and 0 <= p.y < grid_size


def chebyshev_distance(a: Coordinate, b: Coordinate) -> int:
    return max(abs(a.x - b.x), abs(a.y - b.y))


def is_adjacent(a: Coordinate, b: Coordinate, include_self: bool) -> bool:
    """
    Check whether b is within one step of a.

    Args:
        a: Origin tile
        b: Candidate tile
        include_self: Whether a == b counts as adjacent

    Returns:
        True if the Chebyshev distance is at most 1 (and a != b when
        include_self is False)
    """
    if chebyshev_distance(a, b) > 1:
        return False
    return include_self or a != b


def neighbours(p: Coordinate, grid_size: int = DEFAULT_GRID_SIZE,
               include_self: bool = False) -> Iterator[Coordinate]:
    """Yield in-bounds tiles adjacent to p, row by row"""
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            candidate = Coordinate(p.x + dx, p.y + dy)
            if not is_in_bounds(candidate, grid_size):
                continue
            if is_adjacent(p, candidate, include_self):
                yield candidate
