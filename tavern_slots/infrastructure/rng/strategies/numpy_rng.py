# tavern_slots/infrastructure/rng/strategies/numpy_rng.py
import numpy as np
from typing import List, Optional, Sequence


class NumpyRNG:
    """
    Random number generator backed by NumPy, drawing a whole grid per call.
    """
    def __init__(self, seed_value: Optional[int] = None):
        """
        Initialize the RNG with an optional seed.

        Args:
            seed_value: Optional seed value for reproducible grids
        """
        self.rng = np.random.RandomState(seed_value)

    def get_random_int(self, min_val: int, max_val: int) -> int:
        # NumPy's randint is [min, max) so we add 1 to max_val
        return int(self.rng.randint(min_val, max_val + 1))

    def draw_symbols(self, symbols: Sequence[int], count: int) -> List[int]:
        """
        Draw `count` symbols in one vectorised call.

        Args:
            symbols: Symbol alphabet
            count: Number of draws

        Returns:
            List of plain Python ints

        Raises:
            IndexError: If the alphabet is empty
        """
        if not symbols:
            raise IndexError("Cannot draw from an empty symbol alphabet")
        indices = self.rng.randint(0, len(symbols), size=count)
        return [int(symbols[i]) for i in indices]

    def seed(self, seed_value: int) -> None:
        self.rng = np.random.RandomState(seed_value)
