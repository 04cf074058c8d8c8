"""Grid factory for creating grids and placing random obstacles."""

import logging
from typing import AbstractSet, Iterable, Optional

from ..domain.path_oracle import shortest_path_length
from ..domain.types import Coord, Grid, as_coord_set
from .rng import SeededRNG, default_rng

logger = logging.getLogger(__name__)


def create_empty_grid(width: int, height: int) -> Grid:
    """
    Create a new grid without obstacles.

    Args:
        width: Grid width (must be > 0)
        height: Grid height (must be > 0)

    Returns:
        New Grid instance

    Raises:
        ValueError: If width or height <= 0
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Grid dimensions must be positive, got {width}x{height}")

    return Grid(width=width, height=height)


def create_grid(width: int, height: int, obstacles: Iterable[Coord] = (),
                protected: AbstractSet[Coord] = frozenset()) -> Grid:
    """
    Create a grid with the given obstacles.

    Obstacles that fall outside the grid or on a protected cell are skipped.
    """
    grid = create_empty_grid(width, height)
    protected = as_coord_set(protected)

    for coord in as_coord_set(obstacles):
        if coord in protected:
            logger.info("Skipping obstacle on protected cell %s", coord)
            continue
        if not grid.add_obstacle(coord):
            logger.warning("Skipping obstacle outside the grid: %s", coord)

    return grid


def add_random_obstacles(grid: Grid, count: int, protected: AbstractSet[Coord] = frozenset(),
                         rng: Optional[SeededRNG] = None) -> int:
    """
    Clear the grid and place up to `count` obstacles at random cells.

    Protected cells (start, key, goal) are never blocked. Gives up after
    5x `count` draws, so fewer obstacles may be placed on crowded grids.

    Returns:
        Number of obstacles actually placed
    """
    if count < 0:
        raise ValueError(f"Obstacle count must be non-negative, got {count}")

    if rng is None:
        rng = default_rng

    protected = as_coord_set(protected)
    grid.clear_obstacles()

    tries = 0
    placed = 0
    while placed < count and tries < count * 5:
        tries += 1
        coord = (rng.randint(0, grid.width - 1), rng.randint(0, grid.height - 1))

        if coord in protected or grid.is_obstacle(coord):
            continue

        grid.add_obstacle(coord)
        placed += 1

    logger.debug("Placed %d/%d random obstacles in %d tries", placed, count, tries)
    return placed


def is_solvable(grid: Grid, start: Coord, key: Coord, goal: Coord) -> bool:
    """Whether the key is reachable from start and the goal from the key."""
    obstacles = grid.obstacles
    return (shortest_path_length(start, key, grid.size, obstacles) is not None and
            shortest_path_length(key, goal, grid.size, obstacles) is not None)


def generate_solvable_grid(width: int, height: int, obstacle_count: int,
                           start: Coord, key: Coord, goal: Coord,
                           seed: Optional[int] = None, max_attempts: int = 100) -> Grid:
    """
    Generate a grid with random obstacles where start -> key -> goal is possible.

    Raises:
        ValueError: If no solvable layout was found within max_attempts
    """
    rng = SeededRNG(seed)
    grid = create_empty_grid(width, height)
    protected = {tuple(start), tuple(key), tuple(goal)}

    for attempt in range(max_attempts):
        add_random_obstacles(grid, obstacle_count, protected, rng)
        if is_solvable(grid, start, key, goal):
            logger.debug("Solvable layout found on attempt %d", attempt + 1)
            return grid

    raise ValueError(
        f"Could not place {obstacle_count} obstacles on a {width}x{height} grid "
        f"without blocking the route in {max_attempts} attempts"
    )
