"""Breadth-first shortest-path queries over the obstacle grid.

Obstacles are fixed for the whole training run, so PathOracle computes one
reverse BFS distance map per target and answers later queries from it.
"""

from collections import deque
from typing import AbstractSet, Dict, Optional

import numpy as np

from .geometry import equal, in_bounds, neighbors
from .types import Coord, GridSize, as_coord_set

# Returned when no path exists
UNREACHABLE = None

_NO_PATH = -1


def shortest_path_length(start: Coord, target: Coord, grid_size: GridSize,
                         obstacles: AbstractSet[Coord]) -> Optional[int]:
    """
    Number of moves on the shortest 4-connected path from start to target.

    Returns 0 if start equals target and UNREACHABLE (None) if the search
    exhausts the frontier without finding target.
    """
    if equal(start, target):
        return 0

    start = (int(start[0]), int(start[1]))
    target = (int(target[0]), int(target[1]))

    queue = deque([(start, 0)])
    visited = {start}

    while queue:
        current, dist = queue.popleft()

        for next_coord in neighbors(current, grid_size, obstacles):
            if next_coord in visited:
                continue
            if next_coord == target:
                return dist + 1
            visited.add(next_coord)
            queue.append((next_coord, dist + 1))

    return UNREACHABLE


def bfs_distance_map(target: Coord, grid_size: GridSize, obstacles: AbstractSet[Coord]) -> np.ndarray:
    """Reverse BFS from target.

    Returns:
        dist: int32 array of shape (width, height); dist[x, y] is the number of
              moves from (x, y) to target, -1 where no path exists.
    """
    width, height = grid_size
    dist = np.full((width, height), _NO_PATH, dtype=np.int32)

    tx, ty = int(target[0]), int(target[1])
    if not in_bounds((tx, ty), grid_size) or (tx, ty) in obstacles:
        return dist

    dist[tx, ty] = 0
    queue = deque([(tx, ty)])

    while queue:
        x, y = queue.popleft()
        d = int(dist[x, y])

        for nx, ny in neighbors((x, y), grid_size, obstacles):
            if dist[nx, ny] == _NO_PATH:
                dist[nx, ny] = d + 1
                queue.append((nx, ny))

    return dist


class PathOracle:
    """Shortest-path distances for one fixed grid and obstacle set."""

    def __init__(self, grid_size: GridSize, obstacles: AbstractSet[Coord]):
        self.grid_size = grid_size
        self.obstacles = as_coord_set(obstacles)
        self._maps: Dict[Coord, np.ndarray] = {}

    def distance(self, start: Coord, target: Coord) -> Optional[int]:
        """Same answer as shortest_path_length, served from a cached map."""
        if equal(start, target):
            return 0
        if not in_bounds(start, self.grid_size):
            return UNREACHABLE

        target = (int(target[0]), int(target[1]))
        dist_map = self._maps.get(target)
        if dist_map is None:
            dist_map = bfs_distance_map(target, self.grid_size, self.obstacles)
            self._maps[target] = dist_map

        d = int(dist_map[int(start[0]), int(start[1])])
        return UNREACHABLE if d == _NO_PATH else d

    def is_reachable(self, start: Coord, target: Coord) -> bool:
        return self.distance(start, target) is not UNREACHABLE

    def clear(self):
        self._maps.clear()
