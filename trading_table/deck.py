import random
from typing import List, Optional, Tuple

from trading_table.errors import DeckExhausted

# 1..15 plus one high card and one negative card; sums to 130
DECK_VALUES = tuple(range(1, 16)) + (20, -10)


def generate() -> List[int]:
    """Return a fresh deck in canonical order."""
    return list(DECK_VALUES)


def shuffle(deck: List[int], rng: Optional[random.Random] = None) -> List[int]:
    """
    Permute ``deck`` in place with a Fisher-Yates shuffle and return it.
    Every permutation is equally likely given a uniform ``rng``.
    """
    rng = rng or random
    for i in range(len(deck) - 1, 0, -1):
        j = rng.randint(0, i)
        deck[i], deck[j] = deck[j], deck[i]
    return deck


def pop(deck: List[int]) -> Tuple[int, List[int]]:
    """Remove the last card of ``deck``; returns the value and the remaining deck."""
    if not deck:
        raise DeckExhausted()
    value = deck.pop()
    return value, deck
