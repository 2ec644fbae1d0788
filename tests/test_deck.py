import random
import unittest
from collections import Counter

from trading_table import deck
from trading_table.errors import DeckExhausted


class TestDeck(unittest.TestCase):
    def test_generate_fixed_multiset(self):
        d = deck.generate()
        self.assertEqual(len(d), 17)
        self.assertEqual(Counter(d), Counter(list(range(1, 16)) + [20, -10]))
        self.assertEqual(sum(d), 130)
        self.assertEqual(d[:3], [1, 2, 3])
        self.assertEqual(d[-2:], [20, -10])

    def test_generate_returns_fresh_list(self):
        d = deck.generate()
        d.pop()
        self.assertEqual(len(deck.generate()), 17)

    def test_shuffle_is_permutation_in_place(self):
        d = deck.generate()
        out = deck.shuffle(d, random.Random(3))
        self.assertIs(out, d)
        self.assertEqual(sorted(d), sorted(deck.generate()))

    def test_shuffle_seeded_is_reproducible(self):
        a = deck.shuffle(deck.generate(), random.Random(42))
        b = deck.shuffle(deck.generate(), random.Random(42))
        self.assertEqual(a, b)

    def test_shuffle_empty_and_single(self):
        self.assertEqual(deck.shuffle([]), [])
        self.assertEqual(deck.shuffle([7]), [7])

    def test_shuffle_uniform_per_position(self):
        rng = random.Random(1234)
        trials = 17000
        counts = [Counter() for _ in range(17)]
        for _ in range(trials):
            d = deck.shuffle(deck.generate(), rng)
            for pos, value in enumerate(d):
                counts[pos][value] += 1
        expected = trials / 17
        for pos_counts in counts:
            self.assertEqual(len(pos_counts), 17)
            for value, n in pos_counts.items():
                self.assertTrue(0.8 * expected < n < 1.2 * expected,
                                f"value {value} seen {n} times, expected about {expected}")

    def test_shuffle_all_permutations_equally_likely(self):
        rng = random.Random(99)
        trials = 6000
        seen = Counter(tuple(deck.shuffle([1, 2, 3], rng)) for _ in range(trials))
        self.assertEqual(len(seen), 6)
        for perm, n in seen.items():
            self.assertTrue(850 < n < 1150, f"{perm} seen {n} times")

    def test_pop_takes_last(self):
        value, rest = deck.pop([1, 2, 3])
        self.assertEqual(value, 3)
        self.assertEqual(rest, [1, 2])

    def test_pop_empty_raises(self):
        with self.assertRaises(DeckExhausted):
            deck.pop([])
