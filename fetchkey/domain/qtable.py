"""Sparse Q-value table keyed by (cell, has_key) states."""

import logging
from typing import AbstractSet, Dict, Iterator, Optional

import numpy as np

from ..utils.rng import SeededRNG, default_rng
from .types import NUM_ACTIONS, ActionInt, ConfigurationError, Coord, GridSize, StateKey

logger = logging.getLogger(__name__)


class QTable:
    """State-action values for every walkable cell, with and without the key."""

    def __init__(self, rng: Optional[SeededRNG] = None):
        self._table: Dict[StateKey, np.ndarray] = {}
        self._rng = rng or default_rng

    def initialize(self, grid_size: GridSize, obstacles: AbstractSet[Coord]) -> None:
        """Rebuild the table with zero values for every non-obstacle cell."""
        self._table.clear()

        width, height = grid_size
        if width <= 0 or height <= 0:
            logger.error("Cannot initialize Q-table for a %sx%s grid", width, height)
            raise ConfigurationError(f"Grid dimensions must be positive, got {width}x{height}")

        blocked = {(int(c[0]), int(c[1])) for c in obstacles}
        outside = [c for c in blocked if not (0 <= c[0] < width and 0 <= c[1] < height)]
        if outside:
            logger.warning("Ignoring %d obstacle(s) outside the %dx%d grid: %s",
                           len(outside), width, height, sorted(outside))

        for x in range(width):
            for y in range(height):
                if (x, y) in blocked:
                    continue
                self._table[StateKey((x, y), False)] = np.zeros(NUM_ACTIONS)
                self._table[StateKey((x, y), True)] = np.zeros(NUM_ACTIONS)

        logger.debug("Q-table initialized: %d states", len(self._table))

    def __contains__(self, state: StateKey) -> bool:
        return state in self._table

    def __len__(self) -> int:
        return len(self._table)

    def states(self) -> Iterator[StateKey]:
        return iter(self._table)

    def value(self, state: StateKey, action: ActionInt) -> float:
        """Get Q-value for state-action pair, 0.0 for unknown states."""
        values = self._table.get(state)
        if values is None:
            return 0.0
        return float(values[action])

    def values(self, state: StateKey) -> np.ndarray:
        """Copy of the action values of a state, zeros for unknown states."""
        values = self._table.get(state)
        if values is None:
            return np.zeros(NUM_ACTIONS)
        return values.copy()

    def max_value(self, state: StateKey) -> float:
        values = self._table.get(state)
        if values is None:
            return 0.0
        return float(values.max())

    def best_action(self, state: StateKey) -> ActionInt:
        """Greedy action, ties broken uniformly at random."""
        values = self._table.get(state)
        if values is None:
            return self._rng.randrange(NUM_ACTIONS)

        best_actions = np.flatnonzero(values == values.max())
        if len(best_actions) == 1:
            return int(best_actions[0])
        return int(self._rng.choice(best_actions.tolist()))

    def update(self, state: StateKey, action: ActionInt, reward: float,
               next_state: StateKey, alpha: float, gamma: float) -> bool:
        """
        Apply Q(s,a) <- Q(s,a) + alpha * (reward + gamma * max Q(s',.) - Q(s,a)).

        Returns False, leaving the table untouched, if either state is unknown.
        """
        values = self._table.get(state)
        next_values = self._table.get(next_state)
        if values is None or next_values is None:
            logger.warning("State not found in Q-table, skipping update: %s -> %s", state, next_state)
            return False

        current_q = values[action]
        target = reward + gamma * next_values.max()
        values[action] = current_q + alpha * (target - current_q)
        return True

    def greedy_policy(self) -> Dict[StateKey, ActionInt]:
        """Best action of every state by plain argmax (first index on ties)."""
        return {state: int(np.argmax(values)) for state, values in self._table.items()}
