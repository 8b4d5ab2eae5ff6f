"""
Injectable randomness for scoring and sequencing.

Scoring adds a small random term and the energy curve picks tracks at random
within energy bands. Both take a RandomSource so tests can pin outcomes.
"""

import random
from typing import Optional, Protocol, Sequence


class RandomSource(Protocol):
    """Anything that yields floats in [0, 1)."""

    def float(self) -> float:
        ...


class SeededRandom:
    """RandomSource backed by a private random.Random instance."""

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = random.Random(seed)

    def float(self) -> float:
        return self._rng.random()

    def __repr__(self) -> str:
        return f"SeededRandom(seed={self.seed})"


class SequenceRandom:
    """
    Replays a fixed list of floats, cycling when exhausted.

    Useful when a test needs to steer individual picks.
    """

    def __init__(self, values: Sequence[float]):
        if not values:
            raise ValueError("SequenceRandom needs at least one value")
        for v in values:
            if not 0.0 <= v < 1.0:
                raise ValueError(f"Value {v} outside [0, 1)")
        self._values = list(values)
        self._index = 0

    def float(self) -> float:
        value = self._values[self._index % len(self._values)]
        self._index += 1
        return value
