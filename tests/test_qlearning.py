"""Tests for the Q-learning trainer: steps, episodes and whole runs."""

import pytest

from fetchkey.domain.qlearning import QLearningTrainer
from fetchkey.domain.types import (
    ConfigurationError, Grid, StateKey, TrainingConfig, TrainingInProgressError
)
from fetchkey.utils.metrics_export import window_stats


class RecordingObserver:
    def __init__(self):
        self.positions = []
        self.key_visibility = []

    def on_position(self, coord, has_key):
        self.positions.append((coord, has_key))

    def on_key_visibility(self, visible):
        self.key_visibility.append(visible)


def prepared(grid, config, observer=None):
    trainer = QLearningTrainer(grid, config, observer)
    trainer.prepare_run()
    trainer.reset_episode()
    return trainer


class TestValidation:
    def test_missing_grid(self, config):
        with pytest.raises(ConfigurationError):
            QLearningTrainer(None, config).train(5)

    @pytest.mark.parametrize("field_name", ["start", "key", "goal"])
    def test_position_outside_grid(self, empty_grid, field_name):
        config = TrainingConfig(seed=1, **{field_name: (5, 0)})
        trainer = QLearningTrainer(empty_grid, config)
        with pytest.raises(ConfigurationError, match=field_name):
            trainer.train(5)
        assert not trainer.is_training

    def test_bad_rates(self, empty_grid):
        with pytest.raises(ConfigurationError):
            QLearningTrainer(empty_grid, TrainingConfig(learning_rate=1.5)).train(5)
        with pytest.raises(ConfigurationError):
            QLearningTrainer(empty_grid, TrainingConfig(reward_mode="Dense")).train(5)


class TestSingleStep:
    def test_blocked_move_stays_and_is_penalized(self, empty_grid, config):
        trainer = prepared(empty_grid, config)
        trainer.select_action = lambda state: 1  # down, off the grid

        result = trainer.run_step()

        assert result.position == (0, 0)
        assert result.penalties.backtrack == 0.05
        assert result.penalties.loop == 0.03
        assert result.reward == pytest.approx(-0.01 - 0.05 - 0.03)
        assert trainer.q_table.value(StateKey((0, 0), False), 1) == pytest.approx(0.1 * result.reward)
        assert trainer.steps == 1

    def test_key_pickup_rewarded(self, empty_grid):
        config = TrainingConfig(seed=3, start=(3, 2))
        observer = RecordingObserver()
        trainer = prepared(empty_grid, config, observer)
        trainer.select_action = lambda state: 3  # right onto the key

        result = trainer.run_step()

        assert result.has_key
        assert result.reward == pytest.approx(10.0)
        assert observer.key_visibility == [True, False]
        assert trainer.q_table.value(StateKey((3, 2), False), 3) == pytest.approx(1.0)
        assert not result.done

    def test_goal_without_key_ends_episode(self, empty_grid):
        config = TrainingConfig(seed=3, start=(4, 3))
        trainer = prepared(empty_grid, config)
        trainer.select_action = lambda state: 0  # up onto the goal

        result = trainer.run_step()
        assert result.done
        assert result.reward == pytest.approx(-5.0)

        record = trainer.complete_episode()
        assert not record.success
        assert trainer.episodes_until_first_success is None

    def test_goal_with_key_is_success(self, empty_grid):
        config = TrainingConfig(seed=3, start=(4, 2))
        trainer = prepared(empty_grid, config)
        # Key already collected; two moves up reach the goal
        trainer.has_key = True
        trainer.select_action = lambda state: 0

        trainer.run_step()
        result = trainer.run_step()
        assert result.done
        assert result.reward == pytest.approx(100.0)
        assert trainer.complete_episode().success

    def test_step_limit_ends_episode(self, empty_grid):
        config = TrainingConfig(seed=3, max_steps_per_episode=3)
        trainer = prepared(empty_grid, config)
        trainer.select_action = lambda state: 2  # left, blocked
        results = [trainer.run_step() for _ in range(3)]
        assert [r.done for r in results] == [False, False, True]


class TestActionSelection:
    def test_exploration_uses_valid_actions_only(self, empty_grid, config):
        trainer = prepared(empty_grid, config)
        trainer.epsilon = 1.0
        state = StateKey((0, 0), False)
        chosen = {trainer.select_action(state) for _ in range(200)}
        assert chosen == {0, 3}

    def test_boxed_in_cell_falls_back_to_all_actions(self, config):
        grid = Grid(5, 5, {(1, 0), (0, 1)})
        trainer = prepared(grid, TrainingConfig(seed=2))
        assert trainer.valid_actions((0, 0)) == [0, 1, 2, 3]

    def test_greedy_when_epsilon_zero(self, empty_grid, config):
        trainer = prepared(empty_grid, config)
        trainer.epsilon = 0.0
        state = StateKey((0, 0), False)
        trainer.q_table.update(state, 2, 1.0, state, 1.0, 0.0)
        assert all(trainer.select_action(state) == 2 for _ in range(50))


class TestTrainingRun:
    def test_epsilon_decays_monotonically_to_minimum(self, empty_grid):
        config = TrainingConfig(seed=5, epsilon=0.5, epsilon_decay=0.9, epsilon_min=0.05,
                                max_steps_per_episode=20, progress_interval=0)
        result = QLearningTrainer(empty_grid, config).train(60)

        epsilons = [ep.epsilon for ep in result.episodes]
        assert epsilons[0] == 0.5
        assert all(a >= b for a, b in zip(epsilons, epsilons[1:]))
        assert min(epsilons) >= 0.05
        assert result.final_epsilon == pytest.approx(0.05)

    def test_epsilon_resets_between_runs(self, empty_grid):
        config = TrainingConfig(seed=5, epsilon=0.5, epsilon_decay=0.5, max_steps_per_episode=10)
        trainer = QLearningTrainer(empty_grid, config)
        trainer.train(10)
        result = trainer.train(3)
        assert result.episodes[0].epsilon == 0.5
        assert result.total_episodes == 3

    def test_observer_notified_once_per_step(self, empty_grid, config):
        observer = RecordingObserver()
        result = QLearningTrainer(empty_grid, config, observer).train(20)
        assert len(observer.positions) == sum(ep.steps for ep in result.episodes)

    def test_iterator_yields_every_step(self, empty_grid, config):
        trainer = QLearningTrainer(empty_grid, config)
        with trainer.iter_training(10) as run:
            steps = list(run)
        result = trainer.result()
        assert len(steps) == sum(ep.steps for ep in result.episodes)
        assert steps[0].episode == 0 and steps[0].step == 1
        assert steps[-1].done
        assert not trainer.is_training

    def test_second_run_rejected_while_active(self, empty_grid, config):
        trainer = QLearningTrainer(empty_grid, config)
        run = trainer.iter_training(10)
        next(run)
        with pytest.raises(TrainingInProgressError):
            trainer.iter_training(10)
        with pytest.raises(TrainingInProgressError):
            trainer.train(10)
        run.close()
        assert not trainer.is_training
        assert trainer.train(2).total_episodes == 2

    def test_closing_unstarted_run_releases_guard(self, empty_grid, config):
        trainer = QLearningTrainer(empty_grid, config)
        run = trainer.iter_training(10)
        assert trainer.is_training
        run.close()
        assert not trainer.is_training

    def test_closing_finished_run_keeps_newer_run_guarded(self, empty_grid, config):
        trainer = QLearningTrainer(empty_grid, config)
        first = trainer.iter_training(2)
        list(first)
        assert not trainer.is_training

        second = trainer.iter_training(5)
        next(second)
        first.close()

        assert trainer.is_training
        with pytest.raises(TrainingInProgressError):
            trainer.iter_training(1)

        rest = list(second)
        assert rest[-1].done
        assert trainer.result().total_episodes == 5
        assert not trainer.is_training

    def test_zero_episodes(self, empty_grid, config):
        result = QLearningTrainer(empty_grid, config).train(0)
        assert result.total_episodes == 0
        assert result.episodes_until_first_success is None

    def test_negative_episodes_rejected(self, empty_grid, config):
        trainer = QLearningTrainer(empty_grid, config)
        with pytest.raises(ConfigurationError):
            trainer.train(-3)
        assert not trainer.is_training

    def test_reentrant_start_from_observer(self, empty_grid, config):
        errors = []

        class Reentrant(RecordingObserver):
            def on_position(self, coord, has_key):
                if not errors:
                    try:
                        trainer.train(1)
                    except TrainingInProgressError as e:
                        errors.append(e)

        trainer = QLearningTrainer(empty_grid, config, Reentrant())
        result = trainer.train(3)
        assert len(errors) == 1
        assert result.total_episodes == 3

    def test_same_seed_same_history(self, empty_grid):
        config_a = TrainingConfig(seed=11, max_steps_per_episode=30)
        config_b = TrainingConfig(seed=11, max_steps_per_episode=30)
        a = QLearningTrainer(empty_grid, config_a).train(40)
        b = QLearningTrainer(empty_grid, config_b).train(40)
        assert a.episodes == b.episodes

    def test_first_success_is_latched(self, empty_grid):
        config = TrainingConfig(seed=0, progress_interval=0)
        result = QLearningTrainer(empty_grid, config).train(200)
        first = result.episodes_until_first_success
        assert first is not None
        assert result.episodes[first].success
        assert not any(ep.success for ep in result.episodes[:first])


@pytest.mark.parametrize("mode", ["Sparse", "DistanceBased", "Decaying"])
def test_learns_fetch_key_task(empty_grid, mode):
    config = TrainingConfig(seed=0, reward_mode=mode, epsilon=0.1,
                            max_steps_per_episode=100, progress_interval=0)
    trainer = QLearningTrainer(empty_grid, config)
    result = trainer.train(500)

    assert result.total_episodes == 500
    assert result.episodes_until_first_success is not None
    stats = window_stats(result.episodes, 100)
    assert stats.success_rate >= 0.8

    rollout = trainer.follow_policy()
    assert rollout.path[0] == (0, 0)
    assert rollout.success


def test_follow_policy_requires_training(empty_grid, config):
    with pytest.raises(RuntimeError):
        QLearningTrainer(empty_grid, config).follow_policy()


def test_obstacles_on_protected_cells_are_reported(config, caplog):
    grid = Grid(5, 5, {(4, 2)})
    trainer = QLearningTrainer(grid, config)
    trainer.prepare_run()
    assert "start/key/goal" in caplog.text
