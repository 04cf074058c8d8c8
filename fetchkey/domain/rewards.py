"""Reward policies for the key-then-goal task.

All three policies share the same terminal-like events:

    +10    arriving on the key while not holding it
    +100   arriving on the goal while holding the key
    -5     arriving on the goal without the key

Those events replace the living penalty (-0.01) instead of adding to it.
DistanceBased adds a Manhattan-progress term toward the active target;
Decaying scales that term by lambda / (lambda + episode) so shaping fades
out as training goes on.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .geometry import equal, manhattan_distance
from .types import Coord, TrainingConfig

LIVING_PENALTY = -0.01
KEY_REWARD = 10.0
GOAL_REWARD = 100.0
GOAL_WITHOUT_KEY_PENALTY = -5.0


def active_target(has_key: bool, key_pos: Coord, goal_pos: Coord) -> Coord:
    """The cell the agent should currently be heading for."""
    return goal_pos if has_key else key_pos


def terminal_reward(current: Coord, has_key: bool, key_pos: Coord, goal_pos: Coord) -> Optional[float]:
    """Reward of a key/goal event at current, or None when nothing happened."""
    if not has_key and equal(current, key_pos):
        return KEY_REWARD
    if has_key and equal(current, goal_pos):
        return GOAL_REWARD
    if not has_key and equal(current, goal_pos):
        return GOAL_WITHOUT_KEY_PENALTY
    return None


class RewardPolicy(ABC):
    """Computes the base reward of one transition."""

    mode_name: str = ""

    @abstractmethod
    def reward(self, current: Coord, previous: Coord, has_key: bool,
               key_pos: Coord, goal_pos: Coord, episode: int) -> float:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class SparseReward(RewardPolicy):
    mode_name = "Sparse"

    def reward(self, current: Coord, previous: Coord, has_key: bool,
               key_pos: Coord, goal_pos: Coord, episode: int) -> float:
        event = terminal_reward(current, has_key, key_pos, goal_pos)
        if event is not None:
            return event
        return LIVING_PENALTY


class DistanceReward(RewardPolicy):
    """Living penalty plus a bonus for each Manhattan step toward the target."""

    mode_name = "DistanceBased"

    def __init__(self, shaping_multiplier: float = 0.5):
        self.shaping_multiplier = shaping_multiplier

    def shaping_scale(self, episode: int) -> float:
        return 1.0

    def reward(self, current: Coord, previous: Coord, has_key: bool,
               key_pos: Coord, goal_pos: Coord, episode: int) -> float:
        event = terminal_reward(current, has_key, key_pos, goal_pos)
        if event is not None:
            return event

        target = active_target(has_key, key_pos, goal_pos)
        progress = manhattan_distance(previous, target) - manhattan_distance(current, target)
        return LIVING_PENALTY + progress * self.shaping_multiplier * self.shaping_scale(episode)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(shaping_multiplier={self.shaping_multiplier})"


class DecayingReward(DistanceReward):
    """Distance shaping annealed by lambda / (lambda + episode)."""

    mode_name = "Decaying"

    def __init__(self, decay_lambda: float = 500.0, shaping_multiplier: float = 0.5):
        super().__init__(shaping_multiplier)
        self.decay_lambda = decay_lambda

    def shaping_scale(self, episode: int) -> float:
        return self.decay_lambda / (self.decay_lambda + episode)

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(decay_lambda={self.decay_lambda}, "
                f"shaping_multiplier={self.shaping_multiplier})")


def create_reward_policy(config: TrainingConfig) -> RewardPolicy:
    """Build the reward policy selected by config.reward_mode."""
    if config.reward_mode == "Sparse":
        return SparseReward()
    if config.reward_mode == "DistanceBased":
        return DistanceReward(config.shaping_multiplier)
    if config.reward_mode == "Decaying":
        return DecayingReward(config.decay_lambda, config.shaping_multiplier)
    raise ValueError(f"Unknown reward mode: {config.reward_mode}")
