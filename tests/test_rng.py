# tests/test_rng.py
import unittest
import sys
import os
from collections import Counter

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from tavern_slots.infrastructure.rng.rng_provider import RNGProvider
from tavern_slots.infrastructure.rng.strategies.mersenne_rng import MersenneTwisterRNG
from tavern_slots.infrastructure.rng.strategies.numpy_rng import NumpyRNG

SYMBOLS = [0, 1, 2, 3, 4, 5]


class TestRNGStrategies(unittest.TestCase):
    """Test cases for the grid RNG strategies."""

    def test_seeded_draws_are_reproducible(self):
        for strategy_class in (MersenneTwisterRNG, NumpyRNG):
            first = strategy_class(seed_value=12345).draw_symbols(SYMBOLS, 15)
            second = strategy_class(seed_value=12345).draw_symbols(SYMBOLS, 15)
            self.assertEqual(first, second)

    def test_reseed(self):
        rng = NumpyRNG(seed_value=1)
        first = rng.draw_symbols(SYMBOLS, 15)
        rng.seed(1)
        self.assertEqual(rng.draw_symbols(SYMBOLS, 15), first)

    def test_draws_stay_in_alphabet(self):
        for rng in (MersenneTwisterRNG(seed_value=7), NumpyRNG(seed_value=7)):
            draws = rng.draw_symbols([2, 4], 200)
            self.assertEqual(len(draws), 200)
            self.assertTrue(set(draws) <= {2, 4})
            self.assertTrue(all(type(d) is int for d in draws))

    def test_draws_are_roughly_uniform(self):
        for rng in (MersenneTwisterRNG(seed_value=99), NumpyRNG(seed_value=99)):
            counts = Counter(rng.draw_symbols(SYMBOLS, 60000))
            for symbol in SYMBOLS:
                self.assertAlmostEqual(counts[symbol] / 60000, 1 / 6, delta=0.02)

    def test_get_random_int_is_inclusive(self):
        for rng in (MersenneTwisterRNG(seed_value=3), NumpyRNG(seed_value=3)):
            values = {rng.get_random_int(1, 3) for _ in range(500)}
            self.assertEqual(values, {1, 2, 3})

    def test_empty_alphabet(self):
        for rng in (MersenneTwisterRNG(), NumpyRNG()):
            with self.assertRaises(IndexError):
                rng.draw_symbols([], 3)


class TestRNGProvider(unittest.TestCase):

    def setUp(self):
        self.provider = RNGProvider()

    def test_create_from_config(self):
        self.assertIsInstance(self.provider.create_from_config({"strategy": "numpy", "seed": 5}), NumpyRNG)
        self.assertIsInstance(self.provider.create_from_config({}), MersenneTwisterRNG)

    def test_unseeded_instances_are_cached(self):
        self.assertIs(self.provider.get_rng("mersenne"), self.provider.get_rng("MERSENNE"))
        self.assertIsNot(self.provider.get_rng("mersenne", 1), self.provider.get_rng("mersenne", 1))

    def test_unknown_strategy(self):
        with self.assertRaises(ValueError):
            self.provider.get_rng("dice")

    def test_available_strategies(self):
        self.assertEqual(set(RNGProvider.get_available_strategies()), {"mersenne", "numpy"})


if __name__ == '__main__':
    unittest.main()
