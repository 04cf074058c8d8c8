"""Coordinate and grid geometry helpers for 4-directional movement."""

from typing import AbstractSet, List

from .types import ACTION_DELTAS, ActionInt, Coord, GridSize


def equal(a: Coord, b: Coord) -> bool:
    return a[0] == b[0] and a[1] == b[1]


def manhattan_distance(a: Coord, b: Coord) -> int:
    """Calculate Manhattan distance between two positions."""
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def in_bounds(coord: Coord, size: GridSize) -> bool:
    """Check if coordinate is within grid bounds."""
    x, y = coord
    return 0 <= x < size[0] and 0 <= y < size[1]


def step(coord: Coord, action: ActionInt) -> Coord:
    """
    Unit move in one of the four cardinal directions.

    The result is not clamped and may fall outside the grid; callers
    validate it with in_bounds / is_walkable.
    """
    dx, dy = ACTION_DELTAS[action]
    return (coord[0] + dx, coord[1] + dy)


def is_walkable(coord: Coord, size: GridSize, obstacles: AbstractSet[Coord]) -> bool:
    return in_bounds(coord, size) and tuple(coord) not in obstacles


def neighbors(coord: Coord, size: GridSize, obstacles: AbstractSet[Coord]) -> List[Coord]:
    """Walkable neighbours of a cell, in action order (up, down, left, right)."""
    result = []
    for action in range(4):
        next_coord = step(coord, action)
        if is_walkable(next_coord, size, obstacles):
            result.append(next_coord)
    return result


def valid_actions(coord: Coord, size: GridSize, obstacles: AbstractSet[Coord]) -> List[ActionInt]:
    """Actions from coord that lead to a walkable cell."""
    return [action for action in range(4) if is_walkable(step(coord, action), size, obstacles)]
