"""Shared fixtures for the fetch-key test suite."""

import pytest

from fetchkey.domain.types import Grid, TrainingConfig


@pytest.fixture
def empty_grid():
    """5x5 grid without obstacles."""
    return Grid(width=5, height=5)


@pytest.fixture
def config():
    """Default 5x5 scenario: start (0,0), key (4,2), goal (4,4), seeded."""
    return TrainingConfig(seed=1234, max_episodes=50, progress_interval=0)
