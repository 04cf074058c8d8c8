"""Q-learning episode controller for the key-then-goal grid task."""

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import FrozenSet, Iterator, List, Optional, Protocol

from ..utils.metrics_export import window_stats
from ..utils.rng import SeededRNG
from . import geometry
from .anti_degeneracy import AntiDegeneracyTracker, PenaltyBreakdown
from .path_oracle import PathOracle
from .qtable import QTable
from .rewards import RewardPolicy, active_target, create_reward_policy
from .types import (
    ActionInt, ConfigurationError, Coord, EpisodeRecord, GridProvider, GridSize, StateKey,
    TrainingConfig, TrainingInProgressError, TrainingResult, as_coord_set
)

logger = logging.getLogger(__name__)


class EpisodePhase(Enum):
    """Phases of a single episode."""
    RESET = auto()
    STEPPING = auto()
    COMPLETE = auto()


class TrainingObserver(Protocol):
    """Receives position updates while training; must not influence learning."""

    def on_position(self, coord: Coord, has_key: bool) -> None:
        ...

    def on_key_visibility(self, visible: bool) -> None:
        ...


@dataclass(frozen=True)
class StepResult:
    """What happened during one step."""
    episode: int
    step: int
    action: ActionInt
    previous: Coord
    position: Coord
    has_key: bool
    reward: float
    penalties: PenaltyBreakdown
    done: bool


@dataclass
class PolicyRollout:
    """Greedy walk through the learned table (no learning, no exploration)."""
    path: List[Coord] = field(default_factory=list)
    has_key: bool = False
    reached_goal: bool = False

    @property
    def success(self) -> bool:
        return self.has_key and self.reached_goal

    @property
    def steps(self) -> int:
        return max(0, len(self.path) - 1)


class TrainingRun:
    """
    Iterator over the steps of one training run.

    Each __next__ performs exactly one step and returns its StepResult, so a
    caller can render or pause between steps. Closing the run (or leaving a
    ``with`` block) abandons it and releases the trainer.
    """

    def __init__(self, trainer: "QLearningTrainer", episodes: int):
        self._trainer = trainer
        self._steps = trainer._run_steps(episodes, self)

    def __iter__(self) -> "TrainingRun":
        return self

    def __next__(self) -> StepResult:
        return next(self._steps)

    def close(self):
        self._steps.close()
        self._trainer._release_run(self)

    def __enter__(self) -> "TrainingRun":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class QLearningTrainer:
    """Tabular Q-learning agent that learns to fetch the key and reach the goal."""

    def __init__(self, grid: Optional[GridProvider], config: TrainingConfig,
                 observer: Optional[TrainingObserver] = None,
                 rng: Optional[SeededRNG] = None):
        self.grid = grid
        self.config = config
        self.observer = observer
        self.rng = rng or SeededRNG(config.seed)

        self.q_table = QTable(self.rng)
        self.epsilon = config.epsilon
        self.training_history: List[EpisodeRecord] = []
        self.episodes_until_first_success: Optional[int] = None
        self.current_episode = 0
        self.phase = EpisodePhase.RESET

        # Snapshot of the environment for the current run
        self.reward_policy: Optional[RewardPolicy] = None
        self.path_oracle: Optional[PathOracle] = None
        self.tracker: Optional[AntiDegeneracyTracker] = None
        self._grid_size: Optional[GridSize] = None
        self._obstacles: FrozenSet[Coord] = frozenset()

        # Agent run state
        self.position: Coord = tuple(config.start)
        self.previous_position: Coord = tuple(config.start)
        self.has_key = False
        self.steps = 0
        self.episode_reward = 0.0

        self._active_run: Optional[TrainingRun] = None

    @property
    def is_training(self) -> bool:
        return self._active_run is not None

    @property
    def grid_size(self) -> Optional[GridSize]:
        return self._grid_size

    @property
    def obstacles(self) -> FrozenSet[Coord]:
        return self._obstacles

    # Run setup

    def prepare_run(self):
        """Validate the setup and rebuild every per-run component."""
        grid_size = tuple(self.grid.size) if self.grid is not None else None
        self.config.validate(grid_size)

        self._grid_size = grid_size
        self._obstacles = as_coord_set(self.grid.get_obstacles())

        blocked = self._obstacles & self.config.protected_cells
        if blocked:
            logger.warning("Obstacles placed on start/key/goal cells: %s", sorted(blocked))

        self.q_table.initialize(self._grid_size, self._obstacles)
        self.reward_policy = create_reward_policy(self.config)
        self.path_oracle = PathOracle(self._grid_size, self._obstacles)
        self.tracker = AntiDegeneracyTracker(self.config, self.path_oracle)

        self.epsilon = self.config.epsilon
        self.training_history = []
        self.episodes_until_first_success = None
        self.current_episode = 0

        logger.info("Agent ready - mode: %s, grid %dx%d, %d obstacles, %d states",
                    self.reward_policy.mode_name, self._grid_size[0], self._grid_size[1],
                    len(self._obstacles), len(self.q_table))

    # Episode lifecycle

    def reset_episode(self):
        """Put the agent back on the start cell."""
        start = tuple(self.config.start)
        self.position = start
        self.previous_position = start
        self.has_key = False
        self.steps = 0
        self.episode_reward = 0.0
        self.tracker.reset(start)
        self.phase = EpisodePhase.STEPPING

        if self.observer is not None:
            self.observer.on_key_visibility(True)

    def is_episode_finished(self) -> bool:
        """Finished on the goal cell (with or without key) or out of steps."""
        return (geometry.equal(self.position, self.config.goal) or
                self.steps >= self.config.max_steps_per_episode)

    def valid_actions(self, coord: Optional[Coord] = None) -> List[ActionInt]:
        """Actions leading to a walkable cell; all four if the cell is boxed in."""
        coord = self.position if coord is None else coord
        actions = geometry.valid_actions(coord, self._grid_size, self._obstacles)
        return actions or [0, 1, 2, 3]

    def select_action(self, state: StateKey) -> ActionInt:
        """Epsilon-greedy action selection."""
        if self.rng.random() < self.epsilon:
            return self.rng.choice(self.valid_actions(state.coord))
        return self.q_table.best_action(state)

    def _execute_action(self, action: ActionInt):
        new_pos = geometry.step(self.position, action)
        if not geometry.is_walkable(new_pos, self._grid_size, self._obstacles):
            return

        self.position = new_pos
        if not self.has_key and geometry.equal(self.position, self.config.key):
            self.has_key = True
            if self.observer is not None:
                self.observer.on_key_visibility(False)

    def run_step(self) -> StepResult:
        """Observe, act, compute the reward and update the table."""
        config = self.config
        state = StateKey.of(self.position, self.has_key)
        action = self.select_action(state)

        self.previous_position = self.position
        had_key = self.has_key
        self._execute_action(action)

        # Rewards use the key flag held when the move began
        reward = self.reward_policy.reward(
            self.position, self.previous_position, had_key,
            config.key, config.goal, self.current_episode
        )
        target = active_target(had_key, config.key, config.goal)
        penalties = self.tracker.apply(self.previous_position, self.position, target)
        reward -= penalties.total

        next_state = StateKey.of(self.position, self.has_key)
        self.q_table.update(state, action, reward, next_state,
                            config.learning_rate, config.discount_factor)

        self.episode_reward += reward
        self.steps += 1

        if self.observer is not None:
            self.observer.on_position(self.position, self.has_key)

        return StepResult(
            episode=self.current_episode,
            step=self.steps,
            action=action,
            previous=self.previous_position,
            position=self.position,
            has_key=self.has_key,
            reward=reward,
            penalties=penalties,
            done=self.is_episode_finished(),
        )

    def complete_episode(self) -> EpisodeRecord:
        """Record the episode, latch the first success and decay epsilon."""
        success = self.has_key and geometry.equal(self.position, self.config.goal)

        record = EpisodeRecord(
            episode=self.current_episode,
            reward=self.episode_reward,
            steps=self.steps,
            epsilon=self.epsilon,
            success=success,
        )
        self.training_history.append(record)

        if success and self.episodes_until_first_success is None:
            self.episodes_until_first_success = self.current_episode
            logger.info("First success at episode %d", self.current_episode)

        self.decay_epsilon()
        self.phase = EpisodePhase.COMPLETE
        return record

    def decay_epsilon(self):
        """Decay epsilon for less exploration over time."""
        self.epsilon = max(self.config.epsilon_min, self.epsilon * self.config.epsilon_decay)

    # Training runs

    def iter_training(self, episodes: Optional[int] = None) -> TrainingRun:
        """
        Start a run and return it as a step iterator.

        Raises:
            TrainingInProgressError: if a run is already active
            ConfigurationError: if the grid or configuration is invalid
        """
        if self._active_run is not None:
            raise TrainingInProgressError("A training run is already in progress")

        episodes = self.config.max_episodes if episodes is None else episodes
        if episodes < 0:
            raise ConfigurationError(f"Episode count must not be negative, got {episodes}")

        self.prepare_run()
        self._active_run = TrainingRun(self, episodes)
        return self._active_run

    def train(self, episodes: Optional[int] = None) -> TrainingResult:
        """Run every episode to completion and return the result."""
        with self.iter_training(episodes) as run:
            for _ in run:
                pass
        return self.result()

    def _run_steps(self, episodes: int, run: TrainingRun) -> Iterator[StepResult]:
        try:
            for episode in range(episodes):
                self.current_episode = episode
                self.reset_episode()

                while not self.is_episode_finished():
                    yield self.run_step()

                self.complete_episode()

                if self.config.progress_interval > 0 and episode % self.config.progress_interval == 0:
                    self._log_progress()

            self._log_summary()
        finally:
            self._release_run(run)

    def _release_run(self, run: TrainingRun):
        # A stale handle must not clear the guard of a newer run
        if self._active_run is run:
            self._active_run = None

    def result(self) -> TrainingResult:
        return TrainingResult(
            episodes=list(self.training_history),
            reward_mode=self.reward_policy.mode_name if self.reward_policy else self.config.reward_mode,
            final_epsilon=self.epsilon,
            episodes_until_first_success=self.episodes_until_first_success,
        )

    def _log_progress(self):
        stats = window_stats(self.training_history, self.config.progress_interval)
        if stats is None:
            return
        logger.info("Ep %d/%d | Reward: %.2f | Steps: %.1f | Success: %.1f%% | eps: %.3f",
                    self.current_episode, self.config.max_episodes, stats.mean_reward,
                    stats.mean_steps, stats.success_rate * 100, self.epsilon)

    def _log_summary(self):
        stats = window_stats(self.training_history, self.config.summary_window)
        if stats is None:
            return
        first = self.episodes_until_first_success
        logger.info("Training completed - %s | first success: %s | last %d: reward %.2f, "
                    "steps %.2f, success %.1f%%",
                    self.reward_policy.mode_name, first if first is not None else "none",
                    stats.count, stats.mean_reward, stats.mean_steps, stats.success_rate * 100)

    # Policy inspection

    def follow_policy(self, max_steps: Optional[int] = None) -> PolicyRollout:
        """Walk the greedy policy from the start without updating anything."""
        if self._grid_size is None:
            raise RuntimeError("No trained table available; run training first")

        max_steps = max_steps or self.config.max_steps_per_episode
        position: Coord = tuple(self.config.start)
        has_key = False
        rollout = PolicyRollout(path=[position])

        for _ in range(max_steps):
            if geometry.equal(position, self.config.goal):
                break
            action = self.q_table.best_action(StateKey.of(position, has_key))
            candidate = geometry.step(position, action)
            if geometry.is_walkable(candidate, self._grid_size, self._obstacles):
                position = candidate
            if not has_key and geometry.equal(position, self.config.key):
                has_key = True
            rollout.path.append(position)

        rollout.has_key = has_key
        rollout.reached_goal = geometry.equal(position, self.config.goal)
        return rollout
