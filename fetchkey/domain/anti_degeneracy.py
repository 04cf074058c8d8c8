"""Penalties that discourage standing still, short loops and detours."""

from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

from .geometry import equal
from .path_oracle import UNREACHABLE, PathOracle
from .types import Coord, TrainingConfig


class RecentPositionWindow:
    """Last N visited cells, oldest evicted first."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"Window capacity must be at least 1, got {capacity}")
        self._positions: Deque[Coord] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._positions.maxlen

    def register(self, coord: Coord):
        self._positions.append((int(coord[0]), int(coord[1])))

    def reset(self, seed: Optional[Coord] = None):
        self._positions.clear()
        if seed is not None:
            self.register(seed)

    def __contains__(self, coord: Coord) -> bool:
        return any(equal(p, coord) for p in self._positions)

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self):
        return iter(self._positions)


@dataclass(frozen=True)
class PenaltyBreakdown:
    """Amounts to subtract from the base reward (all >= 0)."""
    backtrack: float = 0.0
    loop: float = 0.0
    path: float = 0.0

    @property
    def total(self) -> float:
        return self.backtrack + self.loop + self.path


class AntiDegeneracyTracker:
    """
    Applies the three togglable penalties after each step.

    The path-aware penalty needs a PathOracle and is only active when the
    reward mode has a distance shaping term.
    """

    def __init__(self, config: TrainingConfig, path_oracle: Optional[PathOracle] = None):
        self.config = config
        self.path_oracle = path_oracle
        self.window = RecentPositionWindow(config.loop_window)
        self._path_aware = (config.enable_path_aware_shaping and config.uses_shaping
                            and path_oracle is not None)

    @property
    def path_aware(self) -> bool:
        return self._path_aware

    def reset(self, start: Coord):
        """Clear the recent-position window and seed it with the start cell."""
        self.window.reset(start)

    def backtrack_penalty(self, previous: Coord, current: Coord) -> float:
        if self.config.enable_backtrack_penalty and equal(previous, current):
            return self.config.backtrack_penalty
        return 0.0

    def loop_penalty(self, current: Coord) -> float:
        """Penalty for revisiting a recent cell; registers current either way."""
        if not self.config.enable_loop_penalty:
            return 0.0
        penalty = self.config.loop_penalty if current in self.window else 0.0
        self.window.register(current)
        return penalty

    def path_penalty(self, previous: Coord, current: Coord, target: Coord) -> float:
        if not self._path_aware:
            return 0.0

        before = self.path_oracle.distance(previous, target)
        after = self.path_oracle.distance(current, target)

        if before is UNREACHABLE:
            return 0.0
        if after is UNREACHABLE:
            # The move sealed off the only route
            return self.config.path_blocked_penalty
        if after > before:
            return self.config.path_blocked_penalty * 0.5
        return 0.0

    def apply(self, previous: Coord, current: Coord, target: Coord) -> PenaltyBreakdown:
        return PenaltyBreakdown(
            backtrack=self.backtrack_penalty(previous, current),
            loop=self.loop_penalty(current),
            path=self.path_penalty(previous, current, target),
        )
