#==============================================================================
# SceneCapture - Random Sampler
#==============================================================================
# File: sampler.py
# Description: Seeded source of every random decision made during a run.
#              One instance is created per run and passed explicitly to the
#              components that need it; nothing touches the module-level
#              `random` state.
#==============================================================================

import random
from typing import Optional


class RandomSampler:
    """
    Deterministic scalar sampler backed by `random.Random` (MT19937).

    For a fixed seed and a fixed, ordered sequence of calls the emitted
    values are bit-for-bit reproducible. `uniform(low, high)` computes
    `low + (high - low) * random()`, the same formula `random.Random.uniform`
    uses, so any MT19937 implementation seeded the same way reproduces it.

    Inverted bounds (`low > high`) are not rejected: the value then lies in
    `(high, low]`. RunConfig.validate() refuses inverted bounds before a run
    starts, so the capture pipeline never relies on this.

    Attributes:
        draws: Number of values drawn since the last `seed()` call
    """

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random()
        self._seed: Optional[int] = None
        self.draws = 0
        if seed is not None:
            self.seed(seed)

    @property
    def current_seed(self) -> Optional[int]:
        return self._seed

    def seed(self, value: int) -> None:
        """Restart the stream from `value`."""
        self._rng.seed(value)
        self._seed = value
        self.draws = 0

    def uniform(self, low: float, high: float) -> float:
        """Value in [low, high) drawn from the stream."""
        self.draws += 1
        return low + (high - low) * self._rng.random()

    def getstate(self) -> tuple:
        """Generator state, for resuming an identical stream elsewhere."""
        return (self._seed, self.draws, self._rng.getstate())

    def setstate(self, state: tuple) -> None:
        self._seed, self.draws, rng_state = state
        self._rng.setstate(rng_state)
