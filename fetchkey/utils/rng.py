"""Random number generation utilities for Q-learning training."""

import random
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")


class SeededRNG:
    """Seeded random number generator for reproducible results.

    Each instance owns its own generator, so independent training runs
    never share random state.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._random = random.Random(seed)

    def random(self) -> float:
        """Generate random float in [0, 1)."""
        return self._random.random()

    def randint(self, a: int, b: int) -> int:
        """Generate random integer in [a, b]."""
        return self._random.randint(a, b)

    def randrange(self, n: int) -> int:
        """Generate random integer in [0, n)."""
        return self._random.randrange(n)

    def choice(self, seq: Sequence[T]) -> T:
        """Choose random element from sequence."""
        return self._random.choice(seq)


# Default RNG instance
default_rng = SeededRNG()
