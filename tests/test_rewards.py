"""Tests for the three reward policies."""

import pytest

from fetchkey.domain.rewards import (
    DecayingReward, DistanceReward, SparseReward, active_target, create_reward_policy
)
from fetchkey.domain.types import TrainingConfig

KEY = (4, 2)
GOAL = (4, 4)


class TestSparseReward:
    def setup_method(self):
        self.policy = SparseReward()

    def test_key_pickup(self):
        assert self.policy.reward(KEY, (3, 2), False, KEY, GOAL, 0) == 10

    def test_goal_with_key(self):
        assert self.policy.reward(GOAL, (4, 3), True, KEY, GOAL, 7) == 100

    def test_goal_without_key(self):
        assert self.policy.reward(GOAL, (4, 3), False, KEY, GOAL, 7) == -5

    def test_key_cell_when_already_holding_key(self):
        assert self.policy.reward(KEY, (4, 3), True, KEY, GOAL, 0) == -0.01

    def test_living_penalty(self):
        for current, previous in [((1, 0), (0, 0)), ((0, 0), (0, 0)), ((2, 3), (2, 2))]:
            assert self.policy.reward(current, previous, False, KEY, GOAL, 3) == -0.01
            assert self.policy.reward(current, previous, True, KEY, GOAL, 3) == -0.01

    def test_mode_name(self):
        assert self.policy.mode_name == "Sparse"


class TestDistanceReward:
    def test_closer_and_farther(self):
        policy = DistanceReward(shaping_multiplier=0.5)
        assert policy.reward((1, 0), (0, 0), False, KEY, GOAL, 0) == pytest.approx(-0.01 + 0.5)
        assert policy.reward((0, 0), (1, 0), False, KEY, GOAL, 0) == pytest.approx(-0.01 - 0.5)

    def test_sideways_move_keeps_living_penalty(self):
        policy = DistanceReward(shaping_multiplier=0.5)
        assert policy.reward((0, 0), (0, 0), False, KEY, GOAL, 0) == pytest.approx(-0.01)

    def test_target_switches_to_goal_with_key(self):
        policy = DistanceReward(shaping_multiplier=1.5)
        # Moving from (4,2) to (3,2) is away from the goal (4,4)
        assert policy.reward((3, 2), (4, 2), True, KEY, GOAL, 0) == pytest.approx(-0.01 - 1.5)
        assert policy.reward((4, 3), (4, 2), True, KEY, GOAL, 0) == pytest.approx(-0.01 + 1.5)

    def test_terminal_events_ignore_shaping(self):
        policy = DistanceReward(shaping_multiplier=2.0)
        assert policy.reward(KEY, (3, 2), False, KEY, GOAL, 0) == 10
        assert policy.reward(GOAL, (4, 3), True, KEY, GOAL, 0) == 100
        assert policy.reward(GOAL, (3, 4), False, KEY, GOAL, 0) == -5

    def test_mode_name(self):
        assert DistanceReward().mode_name == "DistanceBased"


class TestDecayingReward:
    def test_episode_zero_matches_distance_based(self):
        decaying = DecayingReward(decay_lambda=500, shaping_multiplier=0.5)
        distance = DistanceReward(shaping_multiplier=0.5)
        for current, previous, has_key in [((1, 0), (0, 0), False), ((0, 0), (1, 0), False),
                                           ((4, 3), (4, 2), True)]:
            assert decaying.reward(current, previous, has_key, KEY, GOAL, 0) == pytest.approx(
                distance.reward(current, previous, has_key, KEY, GOAL, 0))

    def test_decay_factor(self):
        policy = DecayingReward(decay_lambda=100, shaping_multiplier=1.0)
        # factor 100 / (100 + 100) = 0.5
        assert policy.reward((1, 0), (0, 0), False, KEY, GOAL, 100) == pytest.approx(-0.01 + 0.5)

    def test_shaping_vanishes_late_in_training(self):
        policy = DecayingReward(decay_lambda=500, shaping_multiplier=0.5)
        late = policy.reward((1, 0), (0, 0), False, KEY, GOAL, 10**9)
        assert late == pytest.approx(-0.01, abs=1e-6)

    def test_terminal_rewards_not_decayed(self):
        policy = DecayingReward(decay_lambda=500, shaping_multiplier=0.5)
        assert policy.reward(KEY, (3, 2), False, KEY, GOAL, 10**6) == 10
        assert policy.reward(GOAL, (4, 3), True, KEY, GOAL, 10**6) == 100
        assert policy.reward(GOAL, (4, 3), False, KEY, GOAL, 10**6) == -5

    def test_mode_name(self):
        assert DecayingReward().mode_name == "Decaying"


def test_active_target():
    assert active_target(False, KEY, GOAL) == KEY
    assert active_target(True, KEY, GOAL) == GOAL


@pytest.mark.parametrize("mode,cls", [
    ("Sparse", SparseReward),
    ("DistanceBased", DistanceReward),
    ("Decaying", DecayingReward),
])
def test_create_reward_policy(mode, cls):
    policy = create_reward_policy(TrainingConfig(reward_mode=mode, shaping_multiplier=0.7, decay_lambda=300))
    assert type(policy) is cls
    assert policy.mode_name == mode
    if mode == "Decaying":
        assert policy.decay_lambda == 300
    if mode != "Sparse":
        assert policy.shaping_multiplier == 0.7


def test_create_reward_policy_unknown_mode():
    with pytest.raises(ValueError):
        create_reward_policy(TrainingConfig(reward_mode="Dense"))
