# tavern_slots/infrastructure/rng/strategies/mersenne_rng.py
import random
from typing import List, Optional, Sequence


class MersenneTwisterRNG:
    """
    Random number generator using the Mersenne Twister algorithm (Python's default).
    """
    def __init__(self, seed_value: Optional[int] = None):
        # Dedicated instance so sessions never share the module-level generator
        self._random = random.Random()

        if seed_value is not None:
            self.seed(seed_value)

    def get_random_int(self, min_val: int, max_val: int) -> int:
        return self._random.randint(min_val, max_val)

    def draw_symbols(self, symbols: Sequence[int], count: int) -> List[int]:
        """
        Draw symbols uniformly with replacement.

        Raises:
            IndexError: If the alphabet is empty
        """
        if not symbols:
            raise IndexError("Cannot draw from an empty symbol alphabet")
        return [self._random.choice(symbols) for _ in range(count)]

    def seed(self, seed_value: int) -> None:
        self._random.seed(seed_value)
