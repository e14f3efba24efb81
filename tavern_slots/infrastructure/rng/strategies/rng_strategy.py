# tavern_slots/infrastructure/rng/strategies/rng_strategy.py
from typing import List, Protocol, Sequence


class RNGStrategy(Protocol):
    """Interface of the random sources used to fill reel grids."""

    def get_random_int(self, min_val: int, max_val: int) -> int:
        """
        Get a random integer in the range [min_val, max_val].

        Args:
            min_val: Minimum value (inclusive)
            max_val: Maximum value (inclusive)

        Returns:
            Random integer in the specified range
        """
        ...

    def draw_symbols(self, symbols: Sequence[int], count: int) -> List[int]:
        """
        Draw `count` symbols independently and uniformly from an alphabet.

        Args:
            symbols: Symbol alphabet
            count: Number of draws

        Returns:
            List of drawn symbol ids
        """
        ...

    def seed(self, seed_value: int) -> None:
        ...
