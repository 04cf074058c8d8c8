"""Core type definitions for the key-and-goal Q-learning trainer."""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Literal, Optional, Protocol, Set, Tuple

# Coordinate type for grid positions
Coord = Tuple[int, int]

# (width, height) of the grid
GridSize = Tuple[int, int]

# Actions the agent can take
Action = Literal["up", "down", "left", "right"]
ActionInt = Literal[0, 1, 2, 3]  # Numerical representation

NUM_ACTIONS = 4

# Reward modes
RewardMode = Literal["Sparse", "DistanceBased", "Decaying"]

REWARD_MODES: Tuple[RewardMode, ...] = ("Sparse", "DistanceBased", "Decaying")

# Modes whose shaping term makes path-aware penalties meaningful
SHAPED_REWARD_MODES: Tuple[RewardMode, ...] = ("DistanceBased", "Decaying")


class ConfigurationError(ValueError):
    """Raised when a training run cannot start because of its setup."""


class TrainingInProgressError(RuntimeError):
    """Raised when a second training run is started while one is active."""


@dataclass(frozen=True)
class StateKey:
    """Discretized state used to index the Q-table."""
    coord: Coord
    has_key: bool

    @classmethod
    def of(cls, coord: Coord, has_key: bool) -> "StateKey":
        """Derive the state key for an agent position."""
        return cls((int(coord[0]), int(coord[1])), bool(has_key))


class GridProvider(Protocol):
    """Anything that can tell the trainer the grid size and its obstacles."""

    @property
    def size(self) -> GridSize:
        ...

    def get_obstacles(self) -> List[Coord]:
        ...


@dataclass
class Grid:
    """Grid dimensions plus the current obstacle set."""
    width: int
    height: int
    obstacles: Set[Coord] = field(default_factory=set)

    @property
    def size(self) -> GridSize:
        return (self.width, self.height)

    def get_obstacles(self) -> List[Coord]:
        """Obstacles in a stable (sorted) order."""
        return sorted(self.obstacles)

    def is_valid_coord(self, coord: Coord) -> bool:
        """Check if coordinate is within grid bounds."""
        x, y = coord
        return 0 <= x < self.width and 0 <= y < self.height

    def is_obstacle(self, coord: Coord) -> bool:
        return tuple(coord) in self.obstacles

    def is_passable(self, coord: Coord) -> bool:
        """Check if this cell can be traversed."""
        return self.is_valid_coord(coord) and not self.is_obstacle(coord)

    def add_obstacle(self, coord: Coord) -> bool:
        """Add an obstacle, returns False for out-of-bounds or duplicate cells."""
        coord = (int(coord[0]), int(coord[1]))
        if not self.is_valid_coord(coord) or coord in self.obstacles:
            return False
        self.obstacles.add(coord)
        return True

    def remove_obstacle(self, coord: Coord) -> bool:
        coord = (int(coord[0]), int(coord[1]))
        if coord not in self.obstacles:
            return False
        self.obstacles.discard(coord)
        return True

    def clear_obstacles(self):
        self.obstacles.clear()


@dataclass
class TrainingConfig:
    """Configuration for one training run."""
    learning_rate: float = 0.1
    discount_factor: float = 0.99
    epsilon: float = 0.1  # Initial exploration
    epsilon_decay: float = 0.995  # Applied once per finished episode
    epsilon_min: float = 0.01
    reward_mode: RewardMode = "Sparse"
    decay_lambda: float = 500.0  # Shaping decay for the Decaying mode
    shaping_multiplier: float = 0.5
    max_episodes: int = 1000
    max_steps_per_episode: int = 100

    start: Coord = (0, 0)
    key: Coord = (4, 2)
    goal: Coord = (4, 4)

    # Anti-stuck / anti-loop heuristics
    enable_backtrack_penalty: bool = True
    backtrack_penalty: float = 0.05
    enable_loop_penalty: bool = True
    loop_window: int = 4
    loop_penalty: float = 0.03
    enable_path_aware_shaping: bool = True
    path_blocked_penalty: float = 0.08

    # Reporting
    progress_interval: int = 50
    summary_window: int = 100

    seed: Optional[int] = None

    @property
    def uses_shaping(self) -> bool:
        return self.reward_mode in SHAPED_REWARD_MODES

    def validate(self, grid_size: Optional[GridSize]) -> None:
        """Raise ConfigurationError listing every problem with this setup."""
        problems = []

        if grid_size is None:
            raise ConfigurationError("No grid supplied for training")

        width, height = grid_size
        if width <= 0 or height <= 0:
            problems.append(f"grid dimensions must be positive, got {width}x{height}")

        for name in ("start", "key", "goal"):
            x, y = getattr(self, name)
            if not (0 <= x < width and 0 <= y < height):
                problems.append(f"{name} position {(x, y)} is outside the {width}x{height} grid")

        for name in ("learning_rate", "discount_factor", "epsilon", "epsilon_min"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                problems.append(f"{name} must be in [0, 1], got {value}")

        if not 0.0 < self.epsilon_decay <= 1.0:
            problems.append(f"epsilon_decay must be in (0, 1], got {self.epsilon_decay}")
        if self.reward_mode not in REWARD_MODES:
            problems.append(f"unknown reward mode {self.reward_mode!r}")
        if self.decay_lambda <= 0:
            problems.append(f"decay_lambda must be positive, got {self.decay_lambda}")
        if self.max_episodes <= 0:
            problems.append(f"max_episodes must be positive, got {self.max_episodes}")
        if self.max_steps_per_episode <= 0:
            problems.append(f"max_steps_per_episode must be positive, got {self.max_steps_per_episode}")
        if self.loop_window < 1:
            problems.append(f"loop_window must be at least 1, got {self.loop_window}")

        if problems:
            raise ConfigurationError("; ".join(problems))

    @property
    def protected_cells(self) -> FrozenSet[Coord]:
        """Cells that must never hold an obstacle."""
        return frozenset({tuple(self.start), tuple(self.key), tuple(self.goal)})


@dataclass(frozen=True)
class EpisodeRecord:
    """Statistics of one finished episode."""
    episode: int
    reward: float
    steps: int
    epsilon: float
    success: bool


@dataclass
class TrainingResult:
    """Result of a complete training run."""
    episodes: List[EpisodeRecord]
    reward_mode: str
    final_epsilon: float
    episodes_until_first_success: Optional[int] = None

    @property
    def total_episodes(self) -> int:
        return len(self.episodes)

    @property
    def successful_episodes(self) -> int:
        return sum(1 for ep in self.episodes if ep.success)

    @property
    def success_rate(self) -> float:
        """Calculate success rate over the whole run."""
        return self.successful_episodes / self.total_episodes if self.total_episodes > 0 else 0.0

    @property
    def average_reward(self) -> float:
        return sum(ep.reward for ep in self.episodes) / self.total_episodes if self.episodes else 0.0


def as_coord_set(coords: Iterable[Coord]) -> FrozenSet[Coord]:
    """Normalize any iterable of pairs (lists from JSON included) to a frozenset of tuples."""
    return frozenset((int(c[0]), int(c[1])) for c in coords)


# Action mappings
ACTION_TO_INT: Dict[Action, ActionInt] = {
    "up": 0,
    "down": 1,
    "left": 2,
    "right": 3
}

INT_TO_ACTION: Dict[ActionInt, Action] = {
    0: "up",
    1: "down",
    2: "left",
    3: "right"
}

# y grows upward
ACTION_DELTAS: Dict[ActionInt, Coord] = {
    0: (0, 1),   # up
    1: (0, -1),  # down
    2: (-1, 0),  # left
    3: (1, 0)    # right
}
